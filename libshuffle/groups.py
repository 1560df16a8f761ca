from typing import Any, Iterable, List, Optional, Sequence, TypedDict
import logging
import random
from libshuffle.spotify_client import Track, current_user_playlists, fetch_playlist_tracks, fetch_saved_tracks

logger = logging.getLogger(__name__)

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS

TARGET_DURATION_MS = 20 * HOUR_MS

# A playlist this long is treated as a single mix rather than split into albums.
MIX_MIN_DURATION_MS = 45 * MINUTE_MS
MIX_MAX_DURATION_MS = 90 * MINUTE_MS

OUTPUT_PLAYLIST_NAME = 'Shuffle'
EXCLUDED_PLAYLIST_NAMES = frozenset(('Discover Weekly', 'Starred', 'Liked from Radio', OUTPUT_PLAYLIST_NAME))
SAVED_TRACKS_NAME = 'Liked Songs'


class TrackGroup(TypedDict):
    name: str
    tracks: List[Track]
    duration_ms: int


def make_group(name: str, tracks: Sequence[Track]) -> TrackGroup:
    if not tracks:
        raise ValueError('a track group needs at least one track')

    return {
        'name': name,
        'tracks': list(tracks),
        'duration_ms': sum(t['duration_ms'] for t in tracks),
    }


def partition_by_album(tracks: Sequence[Track]) -> List[TrackGroup]:
    res: List[TrackGroup] = []

    start = 0
    while start < len(tracks):
        album_id = tracks[start]['album_id']

        end = start + 1
        while end < len(tracks) and tracks[end]['album_id'] == album_id:
            end += 1

        res.append(make_group(tracks[start]['album_name'], tracks[start:end]))
        start = end

    return res


def partition_groups(playlist_name: str, tracks: Sequence[Track]) -> List[TrackGroup]:
    if not tracks:
        return []

    duration = sum(t['duration_ms'] for t in tracks)
    if MIX_MIN_DURATION_MS < duration < MIX_MAX_DURATION_MS:
        return [make_group(playlist_name, tracks)]

    return partition_by_album(tracks)


def filter_groups(groups: Iterable[TrackGroup], min_duration_ms: int = 0) -> List[TrackGroup]:
    if min_duration_ms <= 0:
        return list(groups)

    return [g for g in groups if g['duration_ms'] >= min_duration_ms]


def load_groups(sp: Any, excluded_names: Iterable[str] = EXCLUDED_PLAYLIST_NAMES, include_saved: bool = False,
                min_duration_ms: int = 0) -> List[TrackGroup]:
    excluded = set(excluded_names)
    groups: List[TrackGroup] = []

    for playlist in current_user_playlists(sp):
        name = playlist.get('name') or ''
        if name in excluded:
            logger.debug('Skipping playlist %s', name)
            continue

        tracks = fetch_playlist_tracks(sp, playlist['id'])
        pl_groups = partition_groups(name, tracks)
        logger.debug('Playlist %s: %d tracks in %d groups', name, len(tracks), len(pl_groups))
        groups.extend(pl_groups)

    if include_saved:
        groups.extend(partition_groups(SAVED_TRACKS_NAME, fetch_saved_tracks(sp)))

    kept = filter_groups(groups, min_duration_ms)
    if len(kept) != len(groups):
        logger.info('Dropped %d groups shorter than %d minutes', len(groups) - len(kept), min_duration_ms // MINUTE_MS)

    return kept


def build_shuffle(groups: Sequence[TrackGroup], target_ms: int = TARGET_DURATION_MS,
                  rng: Optional[random.Random] = None) -> List[TrackGroup]:
    """Shuffle whole groups and keep them until the target duration is reached.

    Groups are taken in shuffled order while the running total is below
    ``target_ms``; the group that reaches or passes the target is the last one.
    """

    if target_ms <= 0:
        raise ValueError('target duration must be positive')

    if rng is None:
        rng = random.Random()

    shuffled = list(groups)
    rng.shuffle(shuffled)

    res: List[TrackGroup] = []
    total = 0
    for group in shuffled:
        if total >= target_ms:
            break

        logger.info(' + %s', group['name'])
        res.append(group)
        total += group['duration_ms']

    logger.info('Play time: %.2f hours', total / HOUR_MS)

    return res


def flatten(groups: Iterable[TrackGroup]) -> List[str]:
    return [t['track_id'] for g in groups for t in g['tracks']]


def total_duration_ms(groups: Iterable[TrackGroup]) -> int:
    return sum(g['duration_ms'] for g in groups)
