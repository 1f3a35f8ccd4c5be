"""
Storage boundaries: persisted key-value blobs and the cookie store.
"""

from .kv_store import KeyValueStore, InMemoryKeyValueStore, RedisKeyValueStore
from .cookie_store import CookieStore, InMemoryCookieStore

__all__ = [
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "RedisKeyValueStore",
    "CookieStore",
    "InMemoryCookieStore",
]
