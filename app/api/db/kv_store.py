import json
import logging
import re
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Optional

import redis.asyncio as redis
from redis.exceptions import LockError, RedisError

from app.api.core.config import settings
from app.api.core.dependencies.redis_service import get_redis_client
from app.api.core.exceptions import PersistenceError

logger = logging.getLogger("app")

SCAN_BATCH_SIZE = 500
_GLOB_CHARS = re.compile(r"([\\*?\[\]])")


def _escape_glob(prefix: str) -> str:
    return _GLOB_CHARS.sub(r"\\\1", prefix)


class KeyValueStore:
    """
    JSON key-value persistence on top of Redis.

    Reads degrade: a storage failure or an undecodable value is logged and
    reported as missing. Writes surface: any failure raises ``PersistenceError``.
    """

    def __init__(self, client: redis.Redis):
        self.client = client

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self.client.get(key)
        except RedisError as e:
            logger.warning(f"KV read failed for {key}: {e}")
            return None
        return self._decode(key, raw)

    async def set(self, key: str, value: Any) -> None:
        try:
            await self.client.set(key, json.dumps(value, default=str))
        except (RedisError, TypeError, ValueError) as e:
            logger.error(f"KV write failed for {key}: {e}", exc_info=True)
            raise PersistenceError(details=f"write failed for {key}") from e

    async def set_if_absent(self, key: str, value: Any) -> bool:
        """Create ``key`` only if it does not exist yet. Returns False when it already did."""
        try:
            created = await self.client.set(key, json.dumps(value, default=str), nx=True)
        except (RedisError, TypeError, ValueError) as e:
            logger.error(f"KV create failed for {key}: {e}", exc_info=True)
            raise PersistenceError(details=f"create failed for {key}") from e
        return bool(created)

    async def delete(self, key: str) -> None:
        try:
            await self.client.delete(key)
        except RedisError as e:
            logger.error(f"KV delete failed for {key}: {e}", exc_info=True)
            raise PersistenceError(details=f"delete failed for {key}") from e

    async def get_by_prefix(self, prefix: str) -> List[Any]:
        """Return every decodable value whose key starts with ``prefix``, ordered by key."""
        try:
            keys = await self._scan_keys(prefix)
            values = []
            for start in range(0, len(keys), SCAN_BATCH_SIZE):
                batch = keys[start : start + SCAN_BATCH_SIZE]
                raws = await self.client.mget(batch)
                for key, raw in zip(batch, raws):
                    value = self._decode(key, raw)
                    if value is not None:
                        values.append(value)
            return values
        except RedisError as e:
            logger.warning(f"KV prefix scan failed for {prefix}: {e}")
            return []

    async def count_by_prefix(self, prefix: str) -> int:
        try:
            return len(await self._scan_keys(prefix))
        except RedisError as e:
            logger.warning(f"KV prefix count failed for {prefix}: {e}")
            return 0

    @asynccontextmanager
    async def lock(self, key: str) -> AsyncIterator[None]:
        """
        Hold ``lock:{key}`` for a single-writer read-modify-write of ``key``.

        Raises:
            PersistenceError: If the lock cannot be acquired in time.
        """
        lock = self.client.lock(
            f"lock:{key}",
            timeout=settings.KV_LOCK_TIMEOUT_SECONDS,
            blocking_timeout=settings.KV_LOCK_WAIT_SECONDS,
        )
        try:
            acquired = await lock.acquire()
        except RedisError as e:
            raise PersistenceError(details=f"could not lock {key}") from e
        if not acquired:
            raise PersistenceError(details=f"timed out waiting for lock on {key}")
        try:
            yield
        finally:
            try:
                await lock.release()
            except (LockError, RedisError) as e:
                # Lock expired under us; the write already happened.
                logger.warning(f"Releasing lock for {key} failed: {e}")

    async def _scan_keys(self, prefix: str) -> List[str]:
        pattern = _escape_glob(prefix) + "*"
        found = set()
        cursor = 0
        while True:
            cursor, keys = await self.client.scan(cursor=cursor, match=pattern, count=SCAN_BATCH_SIZE)
            found.update(key for key in keys if key.startswith(prefix))
            if not cursor:
                break
        return sorted(found)

    @staticmethod
    def _decode(key: str, raw: Optional[str]) -> Optional[Any]:
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning(f"Skipping undecodable value at {key}")
            return None


async def get_kv_store() -> KeyValueStore:
    """FastAPI dependency returning a store bound to the shared Redis client."""
    client = await get_redis_client()
    return KeyValueStore(client)
