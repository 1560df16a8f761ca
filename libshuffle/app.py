from typing import Any, Dict, Iterable, Optional, Sequence

import logging
import random
import requests
import spotipy  # type: ignore
from libshuffle.groups import (EXCLUDED_PLAYLIST_NAMES, OUTPUT_PLAYLIST_NAME, TARGET_DURATION_MS, build_shuffle,
                               flatten, load_groups, total_duration_ms)
from libshuffle.spotify_client import (create_playlist, current_user_id, delete_playlist, find_playlist,
                                       is_unauthorized, reauthenticate, set_playlist_tracks)

logger = logging.getLogger(__name__)


def _rollback(sp: Any, playlist_id: str, created: bool) -> None:
    try:
        if created:
            logger.warning('Removing partially written playlist %s', playlist_id)
            delete_playlist(sp, playlist_id)
        else:
            logger.warning('Emptying partially written playlist %s', playlist_id)
            set_playlist_tracks(sp, playlist_id, [])
    except (spotipy.SpotifyException, requests.RequestException):
        logger.exception('Could not roll back playlist %s', playlist_id)


def publish(sp: Any, user_id: str, name: str, track_ids: Sequence[str], replace_existing: bool = False,
            description: Optional[str] = None) -> str:
    """Write ``track_ids`` into a playlist called ``name`` and return its ID.

    A failed or interrupted write leaves no half-filled playlist behind: a playlist
    created here is removed again, a reused one is emptied. A write rejected with
    401 is retried once into the same playlist after signing in again.
    """

    if not track_ids:
        raise ValueError('There are no tracks to publish.')

    playlist_id = find_playlist(sp, user_id, name) if replace_existing else None
    created = playlist_id is None

    if playlist_id is None:
        playlist_id = create_playlist(sp, user_id, name, description)
        logger.info('Created playlist %s with ID=%s', name, playlist_id)
    else:
        logger.info('Reusing existing playlist with ID=%s', playlist_id)

    try:
        try:
            set_playlist_tracks(sp, playlist_id, track_ids)
        except spotipy.SpotifyException as exc:
            auth_manager = getattr(sp, 'auth_manager', None)
            if auth_manager is None or not is_unauthorized(exc):
                raise

            reauthenticate(auth_manager)
            set_playlist_tracks(sp, playlist_id, track_ids)
    except BaseException:
        _rollback(sp, playlist_id, created)
        raise

    return playlist_id


def _run(sp: Any, target_ms: int, name: str, replace_existing: bool, include_saved: bool, min_duration_ms: int,
         excluded_names: Iterable[str], rng: Optional[random.Random], dry_run: bool) -> Dict[str, Any]:
    user_id = current_user_id(sp)
    logger.info('Signed in as %s', user_id)

    groups = load_groups(sp, excluded_names = set(excluded_names) | {name}, include_saved = include_saved,
                         min_duration_ms = min_duration_ms)
    logger.info('Loaded %d track groups', len(groups))

    chosen = build_shuffle(groups, target_ms, rng = rng)
    track_ids = flatten(chosen)

    playlist_id = None
    if dry_run:
        logger.info('Dry run, not writing %d tracks', len(track_ids))
    else:
        playlist_id = publish(sp, user_id, name, track_ids, replace_existing = replace_existing)

    return {
        'playlist_id': playlist_id,
        'group_count': len(chosen),
        'track_count': len(track_ids),
        'duration_ms': total_duration_ms(chosen),
        'groups': [g['name'] for g in chosen],
    }


def shuffle_library(sp: Any, target_ms: int = TARGET_DURATION_MS, name: str = OUTPUT_PLAYLIST_NAME,
                    replace_existing: bool = False, include_saved: bool = False, min_duration_ms: int = 0,
                    excluded_names: Iterable[str] = EXCLUDED_PLAYLIST_NAMES, rng: Optional[random.Random] = None,
                    dry_run: bool = False) -> Dict[str, Any]:
    args = (sp, target_ms, name, replace_existing, include_saved, min_duration_ms, excluded_names, rng, dry_run)

    try:
        return _run(*args)
    except spotipy.SpotifyException as exc:
        auth_manager = getattr(sp, 'auth_manager', None)
        if auth_manager is None or not is_unauthorized(exc):
            raise

    reauthenticate(auth_manager)

    return _run(*args)
