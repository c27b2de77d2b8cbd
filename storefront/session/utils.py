import hashlib
from typing import Any
import orjson

KEY_PREFIX = "sf:checkout"


def build_key(*parts: Any) -> str:
    joined = ":".join(str(p) for p in parts if p is not None and p != "")
    if len(joined) > 200:
        return hashlib.sha256(joined.encode()).hexdigest()
    return joined


def serialize(value: Any) -> bytes:
    return orjson.dumps(value)


def deserialize(raw: Any) -> Any:
    if raw is None:
        return None
    return orjson.loads(raw)


_RELEASE_LOCK_LUA = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
  return redis.call("DEL", KEYS[1])
else
  return 0
end
"""


async def release_lock(redis_client, lock_key: str, token: str) -> bool:
    # only the holder of the token may release the lock
    released = await redis_client.eval(_RELEASE_LOCK_LUA, 1, lock_key, token)
    return bool(released)
