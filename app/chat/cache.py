import time
import logging
import threading
from typing import Any, Callable, Hashable, Iterable

from app.core.dependencies import get_refetch_interval


logger = logging.getLogger(__name__)


def conversations_key(user_id: str) -> tuple:
    return ("conversations", user_id)


def messages_key(conversation_id: str) -> tuple:
    return ("messages", conversation_id)


def unread_count_key(user_id: str) -> tuple:
    return ("unread_count", user_id)


def keys_for_participants(participant_ids: Iterable[str]) -> list[tuple]:
    keys = []
    for user_id in participant_ids:
        keys.append(conversations_key(user_id))
        keys.append(unread_count_key(user_id))
    return keys


class QueryCache:
    """
    Keyed query results with a single refresh path.

    An entry goes stale `refetch_interval` seconds after it was fetched and
    is re-fetched on the next `get`. Push notifications and mutations drop
    entries with `invalidate`; timers and live views call `refresh`. Both
    end up in `refresh`, which is the only place a fetcher runs. Stale
    entries are evicted whenever a fresh result is stored.

    A result whose key was invalidated while its fetch was running is
    returned to the caller but not stored.
    """

    def __init__(self, refetch_interval: float, clock: Callable[[], float] = time.monotonic):
        self.refetch_interval = refetch_interval
        self._clock = clock
        self._entries: dict = {}
        self._in_flight: dict = {}
        self._lock = threading.Lock()

    def _evict_stale(self, now: float) -> None:
        stale = [
            key
            for key, (_, fetched_at) in self._entries.items()
            if now - fetched_at >= self.refetch_interval
        ]
        for key in stale:
            del self._entries[key]

    def refresh(self, key: Hashable, fetcher: Callable[[], Any]) -> Any:
        token = object()
        with self._lock:
            self._in_flight[key] = token

        try:
            value = fetcher()
        except Exception:
            with self._lock:
                if self._in_flight.get(key) is token:
                    del self._in_flight[key]
            raise

        with self._lock:
            now = self._clock()
            self._evict_stale(now)
            if self._in_flight.get(key) is token:
                del self._in_flight[key]
                self._entries[key] = (value, now)
        return value

    def get(self, key: Hashable, fetcher: Callable[[], Any]) -> Any:
        with self._lock:
            entry = self._entries.get(key)

        if entry is not None:
            value, fetched_at = entry
            if self._clock() - fetched_at < self.refetch_interval:
                return value

        return self.refresh(key, fetcher)

    def invalidate(self, *keys: Hashable) -> None:
        with self._lock:
            for key in keys:
                self._entries.pop(key, None)
                self._in_flight.pop(key, None)
        logger.debug(f"cache_invalidated keys={list(keys)}")


_query_cache: QueryCache | None = None


def get_query_cache() -> QueryCache:
    """Process-wide cache shared by the HTTP routes and the live views."""
    global _query_cache

    if _query_cache is None:
        _query_cache = QueryCache(get_refetch_interval())
    return _query_cache
