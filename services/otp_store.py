"""Storage for pending one-time-code challenges.

Two implementations share one interface: an in-process dictionary for
single-worker deployments and tests, and Redis for anything that runs more
than one worker.
"""

import asyncio

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Optional

from redis.asyncio import Redis

from models.verification import PendingVerification


class PendingVerificationStore(ABC):
    """Keeps at most one live record per handle and one per account."""

    @abstractmethod
    async def save(self, record: PendingVerification) -> None:
        """Store `record`, dropping any earlier live record for the same account."""
        raise NotImplementedError

    @abstractmethod
    async def get(self, handle: str) -> Optional[PendingVerification]:
        raise NotImplementedError

    @abstractmethod
    async def record_failed_attempt(self, handle: str) -> Optional[int]:
        """Increment the failed attempt counter.

        Returns:
            Optional[int]: The new count, or None if the record is gone.
        """
        raise NotImplementedError

    @abstractmethod
    async def consume(self, handle: str) -> Optional[PendingVerification]:
        """Atomically remove and return the record.

        When several callers race on the same handle only one of them gets
        the record back, the others get None.
        """
        raise NotImplementedError

    @abstractmethod
    async def delete(self, handle: str) -> None:
        raise NotImplementedError


class MemoryPendingVerificationStore(PendingVerificationStore):
    """Dictionary backed store for a single process."""

    def __init__(self, retention: timedelta = timedelta(minutes=1)):
        # Expired records are kept around for `retention` so that a late
        # verification can still be told that its code expired
        self.retention = retention
        self._records: dict[str, PendingVerification] = {}
        self._by_account: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def save(self, record: PendingVerification) -> None:
        async with self._lock:
            # The record is stamped by the issuing service clock
            self._purge(record.created_at)

            previous = self._by_account.get(record.account_id)
            if previous and previous != record.handle:
                self._records.pop(previous, None)

            self._records[record.handle] = record
            self._by_account[record.account_id] = record.handle

    async def get(self, handle: str) -> Optional[PendingVerification]:
        record = self._records.get(handle)
        return record.model_copy() if record else None

    async def record_failed_attempt(self, handle: str) -> Optional[int]:
        async with self._lock:
            record = self._records.get(handle)
            if record is None:
                return None
            record.attempts += 1
            return record.attempts

    async def consume(self, handle: str) -> Optional[PendingVerification]:
        async with self._lock:
            record = self._records.pop(handle, None)
            if record and self._by_account.get(record.account_id) == handle:
                del self._by_account[record.account_id]
            return record

    async def delete(self, handle: str) -> None:
        await self.consume(handle)

    def _purge(self, now: datetime) -> None:
        stale = [
            handle
            for handle, record in self._records.items()
            if now > record.expires_at + self.retention
        ]
        for handle in stale:
            record = self._records.pop(handle)
            if self._by_account.get(record.account_id) == handle:
                del self._by_account[record.account_id]


# Increments the counter only while the record still exists, so a record
# consumed in between is not resurrected without a TTL
_INCREMENT_IF_EXISTS = """
if redis.call('EXISTS', KEYS[1]) == 1 then
    return redis.call('HINCRBY', KEYS[1], 'attempts', 1)
end
return -1
"""


class RedisPendingVerificationStore(PendingVerificationStore):
    """Redis hash per handle plus an account -> handle index."""

    def __init__(
        self,
        redis_client: Redis,
        retention: timedelta = timedelta(minutes=1),
        prefix: str = "otp",
    ):
        self.redis = redis_client
        self.retention = retention
        self.prefix = prefix

    def _record_key(self, handle: str) -> str:
        return f"{self.prefix}:pending:{handle}"

    def _account_key(self, account_id: str) -> str:
        return f"{self.prefix}:account:{account_id}"

    def _ttl_seconds(self, record: PendingVerification) -> int:
        remaining = record.expires_at - record.created_at + self.retention
        return max(int(remaining.total_seconds()), 1)

    async def save(self, record: PendingVerification) -> None:
        key = self._record_key(record.handle)
        ttl = self._ttl_seconds(record)

        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.hset(key, mapping=record.model_dump(mode="json"))
            pipe.expire(key, ttl)
            await pipe.execute()

        previous = await self.redis.set(
            self._account_key(record.account_id), record.handle, ex=ttl, get=True
        )
        if previous and previous != record.handle:
            await self.redis.delete(self._record_key(previous))

    async def get(self, handle: str) -> Optional[PendingVerification]:
        data = await self.redis.hgetall(self._record_key(handle))
        return PendingVerification.model_validate(data) if data else None

    async def record_failed_attempt(self, handle: str) -> Optional[int]:
        attempts = await self.redis.eval(_INCREMENT_IF_EXISTS, 1, self._record_key(handle))
        attempts = int(attempts)
        return attempts if attempts >= 0 else None

    async def consume(self, handle: str) -> Optional[PendingVerification]:
        key = self._record_key(handle)

        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.hgetall(key)
            pipe.delete(key)
            data, deleted = await pipe.execute()

        if not deleted or not data:
            return None
        return PendingVerification.model_validate(data)

    async def delete(self, handle: str) -> None:
        await self.redis.delete(self._record_key(handle))
