import json

import pytest

from spotipy.cache_handler import CacheFileHandler
from libshuffle import store as store_module
from libshuffle.store import InMemoryTokenStore, clear_token, create_store_from_env


def test_in_memory_store_round_trips_and_clears():
    store = InMemoryTokenStore()
    assert store.get_cached_token() is None

    store.save_token_to_cache({'access_token': 'a'})
    assert store.get_cached_token() == {'access_token': 'a'}

    clear_token(store)
    assert store.get_cached_token() is None


def test_create_store_defaults_to_cache_file(monkeypatch, tmp_path):
    for name in ('TOKEN_STORE_BACKEND', 'TOKEN_REDIS_URL', 'REDIS_URL'):
        monkeypatch.delenv(name, raising = False)
    monkeypatch.setenv('TOKEN_CACHE_PATH', str(tmp_path / 'token.json'))

    store = create_store_from_env()

    assert isinstance(store, CacheFileHandler)
    assert store.cache_path == str(tmp_path / 'token.json')


def test_clear_token_removes_cache_file(tmp_path):
    path = tmp_path / 'token.json'
    path.write_text(json.dumps({'access_token': 'a'}))
    store = CacheFileHandler(cache_path = str(path))

    clear_token(store)

    assert not path.exists()
    clear_token(store)


def test_create_store_falls_back_when_redis_is_unreachable(monkeypatch, tmp_path):
    monkeypatch.setenv('TOKEN_REDIS_URL', 'redis://localhost:1/0')
    monkeypatch.setenv('TOKEN_CACHE_PATH', str(tmp_path / 'token.json'))

    def unreachable(url, key = store_module.DEFAULT_REDIS_KEY):
        raise RuntimeError('redis down')

    monkeypatch.setattr(store_module, 'RedisTokenStore', unreachable)

    assert isinstance(create_store_from_env(), CacheFileHandler)


class FakeRedis:
    def __init__(self):
        self.data = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value

    def delete(self, key):
        self.data.pop(key, None)

    def ping(self):
        return True


def test_redis_store_saves_and_discards_corrupt_payloads(monkeypatch):
    redis = pytest.importorskip('redis')
    fake = FakeRedis()
    monkeypatch.setattr(redis.Redis, 'from_url', staticmethod(lambda url, decode_responses = False: fake))

    store = store_module.RedisTokenStore('redis://example/0', key = 'token')
    store.save_token_to_cache({'access_token': 'a'})
    assert store.get_cached_token() == {'access_token': 'a'}

    fake.data['token'] = b'not json'
    assert store.get_cached_token() is None
    assert 'token' not in fake.data
