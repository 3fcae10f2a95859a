"""
Dedup gate: atomic claim of canonical URLs.
"""

import logging
import threading
from typing import Optional, Set

import redis.asyncio as redis
from redis.exceptions import RedisError

from ..errors import SharedStateError


class DedupGate:
    """Base class for dedup set backends."""

    async def claim(self, canonical_url: str) -> bool:
        """Return True exactly once per distinct canonical URL."""
        raise NotImplementedError

    async def seen(self, canonical_url: str) -> bool:
        """Check membership without claiming."""
        raise NotImplementedError

    async def size(self) -> int:
        raise NotImplementedError

    async def close(self):
        pass


class MemoryDedupGate(DedupGate):
    """
    In-process dedup set.

    The membership test and insert happen under one lock with no await in
    between, so two workers racing on a URL can never both win.
    """

    def __init__(self, lock_timeout: float = 5.0):
        self.logger = logging.getLogger(__name__)
        self._claimed: Set[str] = set()
        self._lock = threading.Lock()
        self._lock_timeout = lock_timeout

    def _acquire(self):
        if not self._lock.acquire(timeout=self._lock_timeout):
            raise SharedStateError("Timed out waiting for the dedup set lock")

    async def claim(self, canonical_url: str) -> bool:
        self._acquire()
        try:
            if canonical_url in self._claimed:
                return False
            self._claimed.add(canonical_url)
            return True
        finally:
            self._lock.release()

    async def seen(self, canonical_url: str) -> bool:
        self._acquire()
        try:
            return canonical_url in self._claimed
        finally:
            self._lock.release()

    async def size(self) -> int:
        self._acquire()
        try:
            return len(self._claimed)
        finally:
            self._lock.release()


class RedisDedupGate(DedupGate):
    """
    Dedup set stored in a Redis set.

    SADD reports 1 only for the caller that actually inserted the member,
    which gives first-caller-wins semantics across processes.
    """

    def __init__(self, redis_client: redis.Redis, key: str = "hydracrawl:claimed",
                 owns_client: bool = False, delete_on_close: bool = False):
        self.redis_client = redis_client
        self.key = key
        self.owns_client = owns_client
        self.delete_on_close = delete_on_close
        self.logger = logging.getLogger(__name__)

    async def initialize(self, reset: bool = True):
        """Verify the connection and start from an empty set for this crawl."""
        try:
            await self.redis_client.ping()
            if reset:
                await self.redis_client.delete(self.key)
            self.logger.info(f"Redis dedup set ready at key {self.key}")
        except RedisError as e:
            raise SharedStateError(f"Redis dedup set unavailable: {e}") from e

    async def claim(self, canonical_url: str) -> bool:
        try:
            added = await self.redis_client.sadd(self.key, canonical_url)
        except RedisError as e:
            raise SharedStateError(f"Redis claim failed for {canonical_url}: {e}") from e
        return added == 1

    async def seen(self, canonical_url: str) -> bool:
        try:
            return bool(await self.redis_client.sismember(self.key, canonical_url))
        except RedisError as e:
            raise SharedStateError(f"Redis lookup failed for {canonical_url}: {e}") from e

    async def size(self) -> int:
        try:
            return await self.redis_client.scard(self.key)
        except RedisError as e:
            raise SharedStateError(f"Redis size lookup failed: {e}") from e

    async def close(self):
        if self.delete_on_close:
            try:
                await self.redis_client.delete(self.key)
            except RedisError as e:
                self.logger.warning(f"Could not delete dedup key {self.key}: {e}")
        if self.owns_client:
            await self.redis_client.aclose()


async def create_dedup_gate(config, crawl_id: Optional[str] = None) -> DedupGate:
    """
    Build the dedup gate selected by config.dedup.backend.

    With a crawl_id the Redis key is private to that run and removed on close.
    """
    if config.dedup.backend == 'redis':
        client = redis.Redis(
            host=config.redis.host,
            port=config.redis.port,
            db=config.redis.db,
            password=config.redis.password,
            decode_responses=True
        )
        key = config.dedup.key_prefix if crawl_id is None else f"{config.dedup.key_prefix}:{crawl_id}"
        gate = RedisDedupGate(client, key=key, owns_client=True, delete_on_close=crawl_id is not None)
        try:
            await gate.initialize()
        except SharedStateError:
            await client.aclose()
            raise
        return gate
    return MemoryDedupGate()
