import abc
import time
from typing import Any, Dict, Optional, Tuple
import redis.asyncio as redis
from storefront.config.settings import config_settings
from storefront.session.utils import deserialize, release_lock, serialize


class CheckoutSessionStore(abc.ABC):
    """
    Durable key/value storage behind the checkout session.

    Values are JSON-compatible structures. Flags are short lived tokens used as
    per-session locks (acquire succeeds only when the flag is absent).
    """

    @abc.abstractmethod
    async def get(self, key: str) -> Any:
        ...

    @abc.abstractmethod
    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        ...

    @abc.abstractmethod
    async def remove(self, *keys: str) -> None:
        ...

    @abc.abstractmethod
    async def acquire_flag(self, key: str, token: str, ttl: int) -> bool:
        ...

    @abc.abstractmethod
    async def release_flag(self, key: str, token: str) -> bool:
        ...

    async def close(self) -> None:
        return None


class InMemorySessionStore(CheckoutSessionStore):
    """Process local store, used in tests and single-process dev runs."""

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        # key -> (serialized value, expires_at or None)
        self._data: Dict[str, Tuple[bytes, Optional[float]]] = {}

    def _alive(self, key: str) -> Optional[bytes]:
        entry = self._data.get(key)
        if entry is None:
            return None
        raw, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            self._data.pop(key, None)
            return None
        return raw

    async def get(self, key: str) -> Any:
        return deserialize(self._alive(key))

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        # serialize on write so callers never share mutable state with the store
        expires_at = self._clock() + ttl if ttl else None
        self._data[key] = (serialize(value), expires_at)

    async def remove(self, *keys: str) -> None:
        for key in keys:
            self._data.pop(key, None)

    async def acquire_flag(self, key: str, token: str, ttl: int) -> bool:
        if self._alive(key) is not None:
            return False
        self._data[key] = (serialize(token), self._clock() + ttl)
        return True

    async def release_flag(self, key: str, token: str) -> bool:
        raw = self._alive(key)
        if raw is None or deserialize(raw) != token:
            return False
        self._data.pop(key, None)
        return True


class RedisSessionStore(CheckoutSessionStore):

    def __init__(self, client: redis.Redis, default_ttl: Optional[int] = None):
        self._redis = client
        self._default_ttl = default_ttl

    @classmethod
    def from_settings(cls) -> "RedisSessionStore":
        client = redis.Redis(
            host=config_settings.REDIS_HOST, port=config_settings.REDIS_PORT, db=config_settings.REDIS_DB,
            decode_responses=False)
        return cls(client, default_ttl=config_settings.SESSION_TTL_SECONDS)

    async def get(self, key: str) -> Any:
        return deserialize(await self._redis.get(key))

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        await self._redis.set(key, serialize(value), ex=ttl or self._default_ttl)

    async def remove(self, *keys: str) -> None:
        if keys:
            await self._redis.delete(*keys)

    async def acquire_flag(self, key: str, token: str, ttl: int) -> bool:
        locked = await self._redis.set(key, token, nx=True, ex=ttl)
        return bool(locked)

    async def release_flag(self, key: str, token: str) -> bool:
        return await release_lock(self._redis, key, token)

    async def close(self) -> None:
        await self._redis.aclose()


def build_session_store() -> CheckoutSessionStore:
    backend = config_settings.SESSION_BACKEND.lower()
    if backend == "memory":
        return InMemorySessionStore()
    if backend == "redis":
        return RedisSessionStore.from_settings()
    raise ValueError(f"unknown session backend {config_settings.SESSION_BACKEND!r}")
