"""Expiring, single-read key/value stores for captcha answers.

Contract shared by every implementation:

  put(id, value, ttl)   overwrite, expiry = now + ttl
  take_if_valid(id)     atomically remove and return the value if it is still
                        live; expired or absent → None. Exactly one of any
                        number of concurrent callers receives the value.
  remove(id)            unconditional, idempotent

Absence and expiry are never exceptions. Backend failures are: they surface
as ChallengeStoreUnavailable so callers can tell "wrong answer" from
"store is down".
"""

from __future__ import annotations

from datetime import timedelta
from typing import Generic, Optional, Protocol, TypeVar

import redis.asyncio as aioredis
from pydantic import ValidationError as PydanticValidationError
from redis.exceptions import RedisError

from errors import ChallengeStoreUnavailable
from shared.datetime_utils import Clock, utc_now
from shared.expiring_secret import ExpiringSecret
from shared.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")


class ChallengeStore(Protocol):
    async def put(self, challenge_id: str, value: str, ttl: timedelta) -> None: ...

    async def take_if_valid(self, challenge_id: str) -> Optional[str]: ...

    async def remove(self, challenge_id: str) -> None: ...


class InMemoryChallengeStore(Generic[T]):
    """Process-local store.

    ``dict.pop`` is the compare-and-remove primitive: it is atomic per key, so
    no lock spans requests and two callers racing on one id cannot both get
    the value.
    """

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._entries: dict[str, ExpiringSecret[T]] = {}

    async def put(self, challenge_id: str, value: T, ttl: timedelta) -> None:
        self._entries[challenge_id] = ExpiringSecret.issue(value, ttl, clock=self._clock)

    async def take_if_valid(self, challenge_id: str) -> Optional[T]:
        entry = self._entries.pop(challenge_id, None)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            log.debug("challenge_expired", captcha_id=challenge_id)
            return None
        return entry.value

    async def remove(self, challenge_id: str) -> None:
        self._entries.pop(challenge_id, None)

    def purge_expired(self) -> int:
        """Drop entries nobody came back for. Returns how many were removed."""
        now = self._clock()
        stale = [cid for cid, entry in list(self._entries.items()) if entry.is_expired(now)]
        removed = sum(1 for cid in stale if self._entries.pop(cid, None) is not None)
        if removed:
            log.debug("challenge_store_purged", removed=removed)
        return removed

    def __len__(self) -> int:
        return len(self._entries)


class RedisChallengeStore:
    """Redis-backed store shared by every worker process.

    Values are stored as JSON ExpiringSecret documents under ``<prefix><id>``
    with a native Redis TTL. Consumption uses GETDEL, a single atomic
    command. The embedded ``expires_at`` is re-checked on read so expiry is
    decided by the injected clock, not only by Redis eviction.
    """

    def __init__(
        self,
        redis_client: aioredis.Redis,
        clock: Clock = utc_now,
        prefix: str = "captcha:",
    ) -> None:
        self._redis = redis_client
        self._clock = clock
        self._prefix = prefix

    def _key(self, challenge_id: str) -> str:
        return f"{self._prefix}{challenge_id}"

    async def put(self, challenge_id: str, value: str, ttl: timedelta) -> None:
        entry = ExpiringSecret[str].issue(value, ttl, clock=self._clock)
        ttl_seconds = max(int(ttl.total_seconds()), 1)
        try:
            await self._redis.set(
                self._key(challenge_id), entry.model_dump_json(), ex=ttl_seconds
            )
        except RedisError as e:
            log.error(
                "challenge_store_put_failed",
                captcha_id=challenge_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ChallengeStoreUnavailable() from e

    async def take_if_valid(self, challenge_id: str) -> Optional[str]:
        try:
            raw = await self._redis.getdel(self._key(challenge_id))
        except RedisError as e:
            log.error(
                "challenge_store_take_failed",
                captcha_id=challenge_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ChallengeStoreUnavailable() from e

        if raw is None:
            return None
        try:
            entry = ExpiringSecret[str].model_validate_json(raw)
        except PydanticValidationError:
            log.warning("challenge_store_corrupt_entry", captcha_id=challenge_id)
            return None
        if entry.is_expired(self._clock()):
            log.debug("challenge_expired", captcha_id=challenge_id)
            return None
        return entry.value

    async def remove(self, challenge_id: str) -> None:
        try:
            await self._redis.delete(self._key(challenge_id))
        except RedisError as e:
            log.error(
                "challenge_store_remove_failed",
                captcha_id=challenge_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ChallengeStoreUnavailable() from e
