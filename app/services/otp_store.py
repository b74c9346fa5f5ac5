from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Dict, Optional

from redis.asyncio import Redis

from ..domain.schemas.otp import PendingOtp

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class OtpStore:
    """Pending codes keyed by normalised email; one entry per email."""

    async def put(self, entry: PendingOtp) -> None:
        raise NotImplementedError

    async def get(self, email: str) -> Optional[PendingOtp]:
        raise NotImplementedError

    async def delete(self, email: str, expected: Optional[PendingOtp] = None) -> bool:
        """
        Remove the entry; True only if this call removed something.

        With ``expected`` the entry is removed only while it is still exactly
        that entry, so a code issued in the meantime survives.
        """
        raise NotImplementedError

    async def update(self, entry: PendingOtp, expected: PendingOtp) -> bool:
        """Replace ``expected`` with ``entry``; False if the stored entry changed meanwhile."""
        raise NotImplementedError


class InMemoryOtpStore(OtpStore):
    """Process-local store. Only valid for a single-instance deployment."""

    def __init__(self, ttl_seconds: Optional[int] = None, grace_seconds: int = 60) -> None:
        self._entries: Dict[str, PendingOtp] = {}
        # same reaper horizon as the redis key TTL
        self._reap_after = ttl_seconds + grace_seconds if ttl_seconds else None

    def __len__(self) -> int:
        return len(self._entries)

    async def put(self, entry: PendingOtp) -> None:
        if self._reap_after:
            self.purge_expired(entry.issued_at, self._reap_after)
        self._entries[normalize_email(entry.email)] = entry

    async def get(self, email: str) -> Optional[PendingOtp]:
        return self._entries.get(normalize_email(email))

    async def delete(self, email: str, expected: Optional[PendingOtp] = None) -> bool:
        key = normalize_email(email)
        current = self._entries.get(key)
        if current is None or (expected is not None and current != expected):
            return False
        del self._entries[key]
        return True

    async def update(self, entry: PendingOtp, expected: PendingOtp) -> bool:
        key = normalize_email(entry.email)
        current = self._entries.get(key)
        if current is None or current != expected:
            return False
        self._entries[key] = entry
        return True

    def purge_expired(self, now: datetime, ttl_seconds: int) -> int:
        cutoff = now - timedelta(seconds=ttl_seconds)
        stale = [k for k, e in self._entries.items() if e.issued_at < cutoff]
        for k in stale:
            del self._entries[k]
        if stale:
            logger.debug("otp_store_purged", extra={"count": len(stale)})
        return len(stale)


# Delete (no ARGV[2]) or overwrite keeping the key TTL, but only while the key
# still holds ARGV[1] byte for byte.
_COMPARE_AND_SWAP = """
if redis.call('GET', KEYS[1]) ~= ARGV[1] then
    return 0
end
if ARGV[2] then
    redis.call('SET', KEYS[1], ARGV[2], 'KEEPTTL')
else
    redis.call('DEL', KEYS[1])
end
return 1
"""


class RedisOtpStore(OtpStore):
    """Shared store for multi-instance deployments.

    The key TTL is only a reaper for codes that are never verified; whether a
    code has expired is still decided by the authenticator from ``issued_at``.
    Conditional deletes and updates run as one Lua script so a ``put`` from a
    concurrent request can never be clobbered by a verification that read the
    previous entry.
    """

    def __init__(self, client: Redis, *, ttl_seconds: int, grace_seconds: int = 60, prefix: str = "otp") -> None:
        self._redis = client
        self._key_ttl = ttl_seconds + grace_seconds
        self._prefix = prefix
        self._cas = client.register_script(_COMPARE_AND_SWAP)

    def _key(self, email: str) -> str:
        return f"{self._prefix}:{normalize_email(email)}"

    async def put(self, entry: PendingOtp) -> None:
        # SET overwrites atomically: last writer wins
        await self._redis.set(self._key(entry.email), entry.model_dump_json(), ex=self._key_ttl)

    async def get(self, email: str) -> Optional[PendingOtp]:
        raw = await self._redis.get(self._key(email))
        if raw is None:
            return None
        return PendingOtp.model_validate_json(raw)

    async def delete(self, email: str, expected: Optional[PendingOtp] = None) -> bool:
        if expected is None:
            return bool(await self._redis.delete(self._key(email)))
        return bool(await self._cas(keys=[self._key(email)], args=[expected.model_dump_json()]))

    async def update(self, entry: PendingOtp, expected: PendingOtp) -> bool:
        args = [expected.model_dump_json(), entry.model_dump_json()]
        return bool(await self._cas(keys=[self._key(entry.email)], args=args))
