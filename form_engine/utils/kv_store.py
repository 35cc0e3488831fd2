"""
Key-value store backends for session data.

Only the policy layered on the store (keys, TTLs, one-shot queues) belongs
to the session core; the backends here are thin adapters.

Backends:
- MemoryKeyValueStore: cachetools TLRUCache with per-item TTL. Single
  process only, for development and tests.
- RedisKeyValueStore: JSON values in Redis with millisecond TTLs.

Both support an atomic queue pop per key (used by the flash channel):
the memory store pops under its lock, Redis uses LPOP.
"""

import copy
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

import redis
from cachetools import TLRUCache

from form_engine.config import EngineConfig
from form_engine.contracts import SessionKey

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Item:
    value: Any
    ttl_ms: int


def _expires_at(_key, item: _Item, now: float) -> float:
    return now + item.ttl_ms / 1000.0


class MemoryKeyValueStore:
    """
    In-process store using cachetools TLRUCache.

    Values are deep copied on the way in and out so callers never share
    references with stored data (same isolation a serializing store gives).
    """

    def __init__(self, maxsize: int = 10000, timer: Callable[[], float] = time.monotonic):
        self._values: TLRUCache = TLRUCache(maxsize=maxsize, ttu=_expires_at, timer=timer)
        self._queues: TLRUCache = TLRUCache(maxsize=maxsize, ttu=_expires_at, timer=timer)
        self._lock = threading.Lock()

    @staticmethod
    def _address(key: SessionKey) -> tuple:
        return (key.segment, key.id)

    def get(self, key: SessionKey) -> Optional[Any]:
        with self._lock:
            item = self._values.get(self._address(key))
        if item is None:
            return None
        return copy.deepcopy(item.value)

    def set(self, key: SessionKey, value: Any, ttl_ms: int) -> None:
        with self._lock:
            self._values[self._address(key)] = _Item(copy.deepcopy(value), ttl_ms)

    def drop(self, key: SessionKey) -> None:
        with self._lock:
            self._values.pop(self._address(key), None)

    def push(self, key: SessionKey, value: Any, ttl_ms: int) -> None:
        address = self._address(key)
        with self._lock:
            item = self._queues.get(address)
            queue = list(item.value) if item is not None else []
            queue.append(copy.deepcopy(value))
            self._queues[address] = _Item(queue, ttl_ms)

    def pop(self, key: SessionKey) -> Optional[Any]:
        address = self._address(key)
        with self._lock:
            item = self._queues.get(address)
            if item is None or not item.value:
                return None
            head, rest = item.value[0], item.value[1:]
            if rest:
                self._queues[address] = _Item(rest, item.ttl_ms)
            else:
                del self._queues[address]
        return head


class RedisKeyValueStore:
    """
    Redis-backed store. Values are JSON encoded.

    Layout:
        <namespace>:<segment>:<id>        -> JSON value (PX ttl)
        <namespace>:<segment>:<id>:queue  -> list of JSON values (PX ttl)
    """

    def __init__(self, client, namespace: str = "formSubmission"):
        self.client = client
        self.namespace = namespace

    @classmethod
    def from_url(cls, url: str, namespace: str = "formSubmission") -> "RedisKeyValueStore":
        return cls(redis.Redis.from_url(url), namespace=namespace)

    def _address(self, key: SessionKey) -> str:
        return f"{self.namespace}:{key.segment}:{key.id}"

    def get(self, key: SessionKey) -> Optional[Any]:
        raw = self.client.get(self._address(key))
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key: SessionKey, value: Any, ttl_ms: int) -> None:
        self.client.set(self._address(key), json.dumps(value), px=ttl_ms)

    def drop(self, key: SessionKey) -> None:
        self.client.delete(self._address(key))

    def push(self, key: SessionKey, value: Any, ttl_ms: int) -> None:
        address = f"{self._address(key)}:queue"
        pipe = self.client.pipeline()
        pipe.rpush(address, json.dumps(value))
        pipe.pexpire(address, ttl_ms)
        pipe.execute()

    def pop(self, key: SessionKey) -> Optional[Any]:
        raw = self.client.lpop(f"{self._address(key)}:queue")
        if raw is None:
            return None
        return json.loads(raw)


def create_store(config: EngineConfig):
    """
    Select a store backend from config.cache_name.

    Args:
        config: Engine configuration

    Returns:
        KeyValueStore implementation

    Raises:
        ValueError: If cache_name names an unknown backend
    """
    if not config.cache_name:
        logger.warning(
            "You are using the default in-memory cache. "
            "Please provide a cache name (CACHE_NAME) for production deployments."
        )
        return MemoryKeyValueStore(maxsize=config.cache_max_entries)

    if config.cache_name == "memory":
        return MemoryKeyValueStore(maxsize=config.cache_max_entries)

    if config.cache_name == "redis":
        logger.info(f"Using Redis session cache at {config.redis_url}")
        return RedisKeyValueStore.from_url(config.redis_url)

    raise ValueError(f"Unknown cache name: {config.cache_name!r}")
