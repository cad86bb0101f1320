"""
Key-value store adapter.

All gamification state lives in one shared store so that any stateless
instance can serve any request. Two backends implement the same surface:

- RedisStore: redis-py client; compare-and-set via WATCH/MULTI/EXEC.
- InMemoryStore: process-local fallback (REDIS_URL unset, tests).

Keys passed in are unprefixed ("gm:streak:0xabc"); the adapter adds and strips
STORE_KEY_PREFIX so callers never see it.
"""
from __future__ import annotations

import fnmatch
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Set, Tuple

from redis import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from redis.exceptions import WatchError

from backend.core.config import settings
from backend.core.errors import StoreUnavailableError

logger = logging.getLogger("gm")

ScoredMember = Tuple[str, float]


class KeyValueStore(ABC):
    """Primitives the gamification services rely on."""

    def __init__(self, prefix: str = ""):
        self.prefix = prefix

    def _k(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def _strip(self, key: str) -> str:
        # Scans only return keys under our own prefix
        return key[len(self.prefix):]

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def set_if_absent(self, key: str, value: str) -> bool:
        """Write only when the key does not exist. True if this call wrote."""

    @abstractmethod
    def compare_and_set(self, key: str, expected: Optional[str], value: str) -> bool:
        """Write `value` only if the key still holds `expected` (None = absent)."""

    @abstractmethod
    def delete(self, *keys: str) -> int:
        ...

    @abstractmethod
    def scan_keys(self, pattern: str) -> List[str]:
        ...

    @abstractmethod
    def zincrby(self, key: str, member: str, delta: float) -> float:
        ...

    @abstractmethod
    def zset_score(self, key: str, member: str, score: float) -> None:
        ...

    @abstractmethod
    def zscore(self, key: str, member: str) -> Optional[float]:
        ...

    @abstractmethod
    def zrevrange_with_scores(self, key: str, offset: int, limit: int) -> List[ScoredMember]:
        ...

    @abstractmethod
    def zrange_all_with_scores(self, key: str) -> List[ScoredMember]:
        ...

    @abstractmethod
    def sadd(self, key: str, member: str) -> int:
        ...

    @abstractmethod
    def ping(self) -> bool:
        ...


@contextmanager
def _translate_errors(operation: str, key: Optional[str] = None) -> Iterator[None]:
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError) as exc:
        logger.warning("store.unavailable", extra={"operation": operation, "key": key, "error": str(exc)})
        raise StoreUnavailableError(f"Key-value store unavailable during {operation}") from exc


class RedisStore(KeyValueStore):
    def __init__(self, client: Redis, prefix: str = "", scan_count: int = 1000):
        super().__init__(prefix)
        self._client = client
        self._scan_count = scan_count

    @classmethod
    def from_url(cls, url: str, *, prefix: str = "", socket_timeout: float = 5.0, scan_count: int = 1000) -> "RedisStore":
        client = Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client, prefix=prefix, scan_count=scan_count)

    @property
    def client(self) -> Redis:
        return self._client

    def get(self, key: str) -> Optional[str]:
        with _translate_errors("get", key):
            return self._client.get(self._k(key))

    def set(self, key: str, value: str) -> None:
        with _translate_errors("set", key):
            self._client.set(self._k(key), value)

    def set_if_absent(self, key: str, value: str) -> bool:
        with _translate_errors("set_if_absent", key):
            return bool(self._client.set(self._k(key), value, nx=True))

    def compare_and_set(self, key: str, expected: Optional[str], value: str) -> bool:
        full_key = self._k(key)
        with _translate_errors("compare_and_set", key):
            with self._client.pipeline() as pipe:
                try:
                    pipe.watch(full_key)
                    current = pipe.get(full_key)
                    if current != expected:
                        pipe.unwatch()
                        return False
                    pipe.multi()
                    pipe.set(full_key, value)
                    pipe.execute()
                    return True
                except WatchError:
                    return False

    def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        with _translate_errors("delete"):
            return int(self._client.delete(*(self._k(k) for k in keys)))

    def scan_keys(self, pattern: str) -> List[str]:
        with _translate_errors("scan_keys", pattern):
            return [
                self._strip(k)
                for k in self._client.scan_iter(match=self._k(pattern), count=self._scan_count)
            ]

    def zincrby(self, key: str, member: str, delta: float) -> float:
        with _translate_errors("zincrby", key):
            return float(self._client.zincrby(self._k(key), delta, member))

    def zset_score(self, key: str, member: str, score: float) -> None:
        with _translate_errors("zset_score", key):
            self._client.zadd(self._k(key), {member: score})

    def zscore(self, key: str, member: str) -> Optional[float]:
        with _translate_errors("zscore", key):
            return self._client.zscore(self._k(key), member)

    def zrevrange_with_scores(self, key: str, offset: int, limit: int) -> List[ScoredMember]:
        if limit <= 0:
            return []
        with _translate_errors("zrevrange", key):
            rows = self._client.zrevrange(self._k(key), offset, offset + limit - 1, withscores=True)
        return [(member, float(score)) for member, score in rows]

    def zrange_all_with_scores(self, key: str) -> List[ScoredMember]:
        with _translate_errors("zrange", key):
            rows = self._client.zrange(self._k(key), 0, -1, withscores=True)
        return [(member, float(score)) for member, score in rows]

    def sadd(self, key: str, member: str) -> int:
        with _translate_errors("sadd", key):
            return int(self._client.sadd(self._k(key), member))

    def ping(self) -> bool:
        with _translate_errors("ping"):
            return bool(self._client.ping())


class InMemoryStore(KeyValueStore):
    """Thread-safe process-local store with Redis-like semantics."""

    def __init__(self, prefix: str = ""):
        super().__init__(prefix)
        self._lock = threading.RLock()
        self._strings: Dict[str, str] = {}
        self._zsets: Dict[str, Dict[str, float]] = {}
        self._sets: Dict[str, Set[str]] = {}

    def _exists(self, full_key: str) -> bool:
        return full_key in self._strings or full_key in self._zsets or full_key in self._sets

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._strings.get(self._k(key))

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._strings[self._k(key)] = value

    def set_if_absent(self, key: str, value: str) -> bool:
        full_key = self._k(key)
        with self._lock:
            if self._exists(full_key):
                return False
            self._strings[full_key] = value
            return True

    def compare_and_set(self, key: str, expected: Optional[str], value: str) -> bool:
        full_key = self._k(key)
        with self._lock:
            if self._strings.get(full_key) != expected:
                return False
            self._strings[full_key] = value
            return True

    def delete(self, *keys: str) -> int:
        removed = 0
        with self._lock:
            for key in keys:
                full_key = self._k(key)
                found = False
                for bucket in (self._strings, self._zsets, self._sets):
                    if full_key in bucket:
                        del bucket[full_key]
                        found = True
                removed += int(found)
        return removed

    def scan_keys(self, pattern: str) -> List[str]:
        full_pattern = self._k(pattern)
        with self._lock:
            every = list(self._strings) + list(self._zsets) + list(self._sets)
        return [self._strip(k) for k in every if fnmatch.fnmatchcase(k, full_pattern)]

    def zincrby(self, key: str, member: str, delta: float) -> float:
        with self._lock:
            zset = self._zsets.setdefault(self._k(key), {})
            zset[member] = zset.get(member, 0.0) + float(delta)
            return zset[member]

    def zset_score(self, key: str, member: str, score: float) -> None:
        with self._lock:
            self._zsets.setdefault(self._k(key), {})[member] = float(score)

    def zscore(self, key: str, member: str) -> Optional[float]:
        with self._lock:
            return self._zsets.get(self._k(key), {}).get(member)

    def zrevrange_with_scores(self, key: str, offset: int, limit: int) -> List[ScoredMember]:
        if limit <= 0:
            return []
        with self._lock:
            rows = list(self._zsets.get(self._k(key), {}).items())
        # Redis orders equal scores by member, reversed for ZREVRANGE
        rows.sort(key=lambda row: (row[1], row[0]), reverse=True)
        return rows[offset:offset + limit]

    def zrange_all_with_scores(self, key: str) -> List[ScoredMember]:
        with self._lock:
            rows = list(self._zsets.get(self._k(key), {}).items())
        rows.sort(key=lambda row: (row[1], row[0]))
        return rows

    def sadd(self, key: str, member: str) -> int:
        with self._lock:
            members = self._sets.setdefault(self._k(key), set())
            if member in members:
                return 0
            members.add(member)
            return 1

    def smembers(self, key: str) -> Set[str]:
        with self._lock:
            return set(self._sets.get(self._k(key), set()))

    def ping(self) -> bool:
        return True


_store: Optional[KeyValueStore] = None
_store_lock = threading.Lock()


def build_store(settings_obj=None) -> KeyValueStore:
    cfg = settings_obj or settings
    if cfg.REDIS_URL:
        return RedisStore.from_url(
            cfg.REDIS_URL,
            prefix=cfg.STORE_KEY_PREFIX,
            socket_timeout=cfg.REDIS_SOCKET_TIMEOUT,
            scan_count=cfg.STORE_SCAN_COUNT,
        )
    logger.warning("REDIS_URL not set; using process-local in-memory store")
    return InMemoryStore(prefix=cfg.STORE_KEY_PREFIX)


def get_store() -> KeyValueStore:
    """Process-wide store, built lazily from settings."""
    global _store
    if _store is None:
        with _store_lock:
            if _store is None:
                _store = build_store()
    return _store


def set_store(store: Optional[KeyValueStore]) -> None:
    """Swap the process-wide store (tests, embedding). None resets to lazy build."""
    global _store
    with _store_lock:
        _store = store
