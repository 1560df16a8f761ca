from typing import Any, Dict, List, Optional

import pytest


def make_item(track_id: Optional[str], album_id: Optional[str] = 'al1', duration_ms: int = 200000,
              album_name: str = 'Album', is_local: bool = False) -> Dict[str, Any]:
    return {
        'track': {
            'id': track_id,
            'duration_ms': duration_ms,
            'is_local': is_local,
            'type': 'track',
            'album': {'id': album_id, 'name': album_name},
        }
    }


def make_track(track_id: str, album_id: str = 'al1', duration_ms: int = 200000, album_name: str = 'Album',
               position: int = 0) -> Dict[str, Any]:
    return {
        'track_id': track_id,
        'duration_ms': duration_ms,
        'album_id': album_id,
        'album_name': album_name,
        'position': position,
    }


def _page(items: List[Any], offset: int, limit: int) -> Dict[str, Any]:
    return {'items': items[offset:offset + limit], 'total': len(items)}


class FakeSpotify:
    """In-memory stand-in for the parts of spotipy.Spotify the tool uses."""

    def __init__(self, playlists: Optional[Dict[str, List[Dict[str, Any]]]] = None, user_id: str = 'me',
                 saved: Optional[List[Dict[str, Any]]] = None) -> None:
        self.user_id = user_id
        self.playlists: List[Dict[str, Any]] = []
        self.items: Dict[str, List[Dict[str, Any]]] = {}
        self.saved = saved or []
        self.auth_manager = None
        self.calls: List[str] = []
        self.unfollowed: List[str] = []

        for name, items in (playlists or {}).items():
            self.add_playlist(name, items)

    def add_playlist(self, name: str, items: List[Dict[str, Any]], owner: Optional[str] = None) -> str:
        playlist_id = f'pl{len(self.playlists) + 1}'
        self.playlists.append({'id': playlist_id, 'name': name, 'owner': {'id': owner or self.user_id}})
        self.items[playlist_id] = list(items)
        return playlist_id

    def current_user(self):
        self.calls.append('current_user')
        return {'id': self.user_id}

    def current_user_playlists(self, limit = 50, offset = 0):
        return _page(self.playlists, offset, limit)

    def playlist_items(self, playlist_id, fields = None, limit = 100, offset = 0, market = None,
                       additional_types = ('track', 'episode')):
        return _page(self.items[playlist_id], offset, limit)

    def current_user_saved_tracks(self, limit = 20, offset = 0, market = None):
        return _page(self.saved, offset, limit)

    def user_playlist_create(self, user, name, public = True, collaborative = False, description = ''):
        self.calls.append('create')
        return {'id': self.add_playlist(name, [], owner = user)}

    def playlist_replace_items(self, playlist_id, items):
        self.calls.append('replace')
        self.items[playlist_id] = [{'track': {'id': i}} for i in items]

    def playlist_add_items(self, playlist_id, items, position = None):
        self.calls.append('add')
        self.items[playlist_id].extend({'track': {'id': i}} for i in items)

    def current_user_unfollow_playlist(self, playlist_id):
        self.unfollowed.append(playlist_id)
        self.playlists = [p for p in self.playlists if p['id'] != playlist_id]

    def written_ids(self, playlist_id: str) -> List[str]:
        return [i['track']['id'] for i in self.items[playlist_id]]


@pytest.fixture
def fake_spotify():
    return FakeSpotify()
