from typing import Any, Callable, Dict, List, Optional, Sequence, TypedDict
import logging
import os
import time

import spotipy  # type: ignore
from spotipy.oauth2 import SpotifyOAuth, SpotifyOauthError  # type: ignore

from libshuffle.store import clear_token, create_store_from_env

try:  # pragma: no cover - optional convenience helper
    from dotenv import load_dotenv
except ImportError:  # pragma: no cover - dotenv is optional
    load_dotenv = None

logger = logging.getLogger(__name__)

REDIRECT_URI = 'http://localhost:8888/callback'
SCOPE = 'user-library-read playlist-read-private playlist-modify-private playlist-modify-public'
DEFAULT_DESCRIPTION = 'Automatically-generated shuffled playlist'

MAX_RATE_LIMIT_RETRIES = 5
PLAYLIST_PAGE_SIZE = 50
TRACK_PAGE_SIZE = 100
SAVED_TRACK_PAGE_SIZE = 50
WRITE_CHUNK_SIZE = 100

TRACK_FIELDS = 'items(track(id,duration_ms,is_local,type,album(id,name))),total'


class Track(TypedDict):
    track_id: str
    duration_ms: int
    album_id: Optional[str]
    album_name: str
    position: int


def _credential(*names: str) -> Optional[str]:
    for name in names:
        value = os.getenv(name)
        if value:
            return value

    return None


def get_auth_manager(cache_handler: Any = None, open_browser: bool = True) -> SpotifyOAuth:
    if load_dotenv is not None:
        load_dotenv()

    client_id = _credential('CLIENT_ID', 'SPOTIFY_CLIENT_ID')
    client_secret = _credential('CLIENT_SECRET', 'SPOTIFY_CLIENT_SECRET')

    if not client_id or not client_secret:
        raise RuntimeError('CLIENT_ID or CLIENT_SECRET is missing from the environment.')

    return SpotifyOAuth(
        client_id = client_id,
        client_secret = client_secret,
        redirect_uri = os.getenv('REDIRECT_URI') or REDIRECT_URI,
        scope = SCOPE,
        cache_handler = cache_handler if cache_handler is not None else create_store_from_env(),
        open_browser = open_browser,
    )


def get_spotify_client(cache_handler: Any = None, open_browser: bool = True) -> spotipy.Spotify:
    auth = get_auth_manager(cache_handler, open_browser = open_browser)
    ensure_token(auth)

    return spotipy.Spotify(auth_manager = auth)


def ensure_token(auth_manager: SpotifyOAuth) -> Dict[str, Any]:
    """Return a usable token, running the browser sign-in only when none is cached."""

    try:
        token_info = auth_manager.validate_token(auth_manager.cache_handler.get_cached_token())
    except SpotifyOauthError as exc:
        logger.warning('Could not refresh the cached token: %s', exc)
        token_info = None

    if token_info:
        logger.debug('Using cached Spotify token')
        return token_info

    logger.info('No usable Spotify token cached, starting browser sign-in.')
    auth_manager.get_access_token(as_dict = False, check_cache = False)

    return auth_manager.cache_handler.get_cached_token()


def reauthenticate(auth_manager: SpotifyOAuth) -> Dict[str, Any]:
    logger.warning('Spotify rejected the stored token, signing in again.')
    clear_token(auth_manager.cache_handler)

    return ensure_token(auth_manager)


def is_unauthorized(exc: BaseException) -> bool:
    return isinstance(exc, spotipy.SpotifyException) and exc.http_status == 401


def retry_after_seconds(exc: spotipy.SpotifyException) -> int:
    headers = exc.headers or {}
    value = headers.get('Retry-After') or headers.get('retry-after')

    try:
        return max(1, int(value))
    except (TypeError, ValueError):
        return 1


def call_api(func: Callable[..., Any], *args: Any, max_retries: int = MAX_RATE_LIMIT_RETRIES,
             sleep: Callable[[float], None] = time.sleep, **kwargs: Any) -> Any:
    attempt = 0

    while True:
        try:
            return func(*args, **kwargs)
        except spotipy.SpotifyException as exc:
            if exc.http_status != 429 or attempt >= max_retries:
                raise

            wait = retry_after_seconds(exc)
            logger.warning('Rate limited by Spotify, retrying in %s s', wait)
            sleep(wait)
            attempt += 1


def fetch_all(get_page: Callable[[int], Dict[str, Any]], sleep: Callable[[float], None] = time.sleep) -> List[Any]:
    """Collect every item of an offset-paginated endpoint.

    The total reported by the first page bounds the walk. The offset advances by
    the number of items actually received, so a short page never skips items.
    """

    page = call_api(get_page, 0, sleep = sleep)
    total = page.get('total') or 0
    res: List[Any] = list(page.get('items') or [])

    offset = len(res)
    while offset < total:
        page = call_api(get_page, offset, sleep = sleep)
        items = page.get('items') or []

        if not items:
            logger.warning('Got 0 items in request for offset=%s', offset)
            break

        res.extend(items)
        offset += len(items)

    return res


def _tracks_from_items(items: Sequence[Dict[str, Any]]) -> List[Track]:
    res: List[Track] = []

    for position, item in enumerate(items):
        s = (item or {}).get('track')
        if not s or s.get('is_local') or not s.get('id'):
            continue

        if s.get('type', 'track') != 'track':
            continue

        album = s.get('album') or {}
        res.append({
            'track_id': s['id'],
            'duration_ms': int(s.get('duration_ms') or 0),
            'album_id': album.get('id'),
            'album_name': album.get('name') or '',
            'position': position,
        })

    return res


def current_user_id(sp: Any) -> str:
    return call_api(sp.current_user)['id']


def current_user_playlists(sp: Any) -> List[Dict[str, Any]]:
    return fetch_all(lambda offset: sp.current_user_playlists(limit = PLAYLIST_PAGE_SIZE, offset = offset))


def fetch_playlist_tracks(sp: Any, playlist_id: str) -> List[Track]:
    items = fetch_all(lambda offset: sp.playlist_items(playlist_id, fields = TRACK_FIELDS, limit = TRACK_PAGE_SIZE,
                                                       offset = offset, additional_types = ('track',)))

    return _tracks_from_items(items)


def fetch_saved_tracks(sp: Any) -> List[Track]:
    items = fetch_all(lambda offset: sp.current_user_saved_tracks(limit = SAVED_TRACK_PAGE_SIZE, offset = offset))

    return _tracks_from_items(items)


def find_playlist(sp: Any, user_id: str, name: str) -> Optional[str]:
    for playlist in current_user_playlists(sp):
        owner = (playlist.get('owner') or {}).get('id')
        if playlist.get('name') == name and owner == user_id:
            return playlist['id']

    return None


def create_playlist(sp: Any, user_id: str, name: str, description: Optional[str] = None) -> str:
    res = call_api(sp.user_playlist_create, user_id, name, public = False,
                   description = description or DEFAULT_DESCRIPTION)

    return res['id']


def set_playlist_tracks(sp: Any, playlist_id: str, track_ids: Sequence[str]) -> None:
    chunks = [list(track_ids[i:i + WRITE_CHUNK_SIZE]) for i in range(0, len(track_ids), WRITE_CHUNK_SIZE)]

    call_api(sp.playlist_replace_items, playlist_id, chunks[0] if chunks else [])
    for chunk in chunks[1:]:
        call_api(sp.playlist_add_items, playlist_id, chunk)


def delete_playlist(sp: Any, playlist_id: str) -> None:
    call_api(sp.current_user_unfollow_playlist, playlist_id)
