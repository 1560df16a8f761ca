from typing import List, Optional
import argparse
import logging
import os
import random
import sys

import requests
import spotipy  # type: ignore
from spotipy.oauth2 import SpotifyOauthError  # type: ignore
from libshuffle.app import shuffle_library
from libshuffle.groups import HOUR_MS, MINUTE_MS, OUTPUT_PLAYLIST_NAME
from libshuffle.spotify_client import get_spotify_client
from libshuffle.store import InMemoryTokenStore

logger = logging.getLogger('libshuffle')

TARGET_HOURS = 20


def _default_hours(parser: argparse.ArgumentParser) -> float:
    raw = os.getenv('SHUFFLE_TARGET_HOURS')
    if not raw:
        return TARGET_HOURS

    try:
        return float(raw)
    except ValueError:
        parser.error(f'SHUFFLE_TARGET_HOURS must be a number, got {raw!r}')


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog = 'libshuffle', description = 'Shuffle a Spotify library album by album.')
    parser.add_argument('-v', '--verbose', action = 'store_true', help = 'Log debug output.')

    commands = parser.add_subparsers(dest = 'command', required = True)

    shuffle = commands.add_parser('shuffle-library', help = "Shuffle the user's entire library into a playlist.")
    shuffle.add_argument('--hours', type = float, default = _default_hours(parser),
                         help = f'Approximate play time of the playlist (default: {TARGET_HOURS}).')
    shuffle.add_argument('--name', default = OUTPUT_PLAYLIST_NAME,
                         help = f'Name of the playlist to write (default: {OUTPUT_PLAYLIST_NAME}).')
    shuffle.add_argument('--replace-existing', action = 'store_true',
                         help = 'Overwrite a playlist you own with the same name instead of creating one.')
    shuffle.add_argument('--include-saved', action = 'store_true', help = 'Include your Liked Songs.')
    shuffle.add_argument('--min-group-minutes', type = float, default = 0,
                         help = 'Skip groups shorter than this many minutes (default: 0).')
    shuffle.add_argument('--seed', type = int, help = 'Seed for a reproducible shuffle.')
    shuffle.add_argument('--dry-run', action = 'store_true', help = 'Pick the groups but do not write a playlist.')
    shuffle.add_argument('--no-browser', action = 'store_true',
                         help = 'Do not open a browser; paste the redirect URL instead.')
    shuffle.add_argument('--no-cache', action = 'store_true', help = 'Keep the sign-in token in memory only.')

    args = parser.parse_args(argv)

    if args.command == 'shuffle-library' and args.hours <= 0:
        parser.error('--hours must be positive')

    return args


def run_shuffle_library(args: argparse.Namespace) -> int:
    cache_handler = InMemoryTokenStore() if args.no_cache else None
    sp = get_spotify_client(cache_handler, open_browser = not args.no_browser)

    summary = shuffle_library(
        sp,
        target_ms = int(args.hours * HOUR_MS),
        name = args.name,
        replace_existing = args.replace_existing,
        include_saved = args.include_saved,
        min_duration_ms = int(args.min_group_minutes * MINUTE_MS),
        rng = random.Random(args.seed) if args.seed is not None else None,
        dry_run = args.dry_run,
    )

    print(f"{summary['track_count']} tracks from {summary['group_count']} groups, "
          f"{summary['duration_ms'] / HOUR_MS:.2f} hours")
    if summary['playlist_id']:
        print(f"Playlist {args.name}: {summary['playlist_id']}")

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    logging.basicConfig(level = logging.DEBUG if args.verbose else logging.INFO,
                        format = '%(levelname)s %(name)s: %(message)s')

    try:
        return run_shuffle_library(args)
    except KeyboardInterrupt:
        logger.error('Interrupted')
        return 130
    except (RuntimeError, ValueError, spotipy.SpotifyException, SpotifyOauthError, requests.RequestException) as exc:
        logger.error('%s', exc)
        return 1


if __name__ == '__main__':
    sys.exit(main())
