from __future__ import annotations

import logging
import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from ..domain.schemas.otp import PendingOtp, VerificationResult
from ..models import ROLES
from ..observability.metrics import OTP_DISPATCH_FAILURES, OTP_REQUESTED, OTP_VERIFIED
from .otp_sender import EmailOtpSender
from .otp_store import OtpStore, normalize_email

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
# a verification that keeps losing its conditional write gives up as not_found
_RACE_RETRIES = 5

# user-facing text per failure reason (HTTP 400 bodies)
FAILURE_MESSAGES = {
    "not_found": "OTP not found or expired",
    "expired": "OTP has expired",
    "invalid_code": "Invalid OTP",
    "too_many_attempts": "Too many attempts",
}


class InvalidOtpRequest(ValueError):
    pass


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def generate_code() -> str:
    # 100000..999999 inclusive, never a leading zero
    return str(100_000 + secrets.randbelow(900_000))


class OtpAuthenticator:
    """
    Email ownership handshake: issue a code, then consume it exactly once.

    Per email the state is either NONE or PENDING. A new request replaces the
    pending code; a successful verification, or a verification that finds the
    code past its TTL, returns the email to NONE. Expiry is only checked when a
    verification touches the entry.
    """

    def __init__(
        self,
        store: OtpStore,
        sender: EmailOtpSender,
        *,
        ttl_seconds: int = 600,
        max_attempts: int = 0,
    ) -> None:
        self._store = store
        self._sender = sender
        self.ttl = timedelta(seconds=ttl_seconds)
        self.max_attempts = max_attempts

    async def request_code(
        self, email: str, role: str, pending_profile: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Store a fresh code for ``email`` and hand it to the email sender.

        Returns the code. Delivery problems are logged and counted but never
        raised: the stored code stays verifiable either way.
        """
        normalized = normalize_email(email)
        if not normalized or not _EMAIL_RE.match(normalized):
            raise InvalidOtpRequest("A valid email is required")
        if role not in ROLES:
            raise InvalidOtpRequest(f"Role must be one of: {', '.join(ROLES)}")

        code = generate_code()
        entry = PendingOtp(
            email=normalized,
            code=code,
            role=role,
            issued_at=_now_utc(),
            pending_profile=dict(pending_profile or {}),
        )
        await self._store.put(entry)
        OTP_REQUESTED.labels(role=role).inc()
        logger.info("otp_issued", extra={"email": normalized, "role": role})

        try:
            await self._sender.send(normalized, code, role)
        except Exception:
            OTP_DISPATCH_FAILURES.inc()
            logger.exception("otp_dispatch_failed", extra={"email": normalized, "role": role})
        return code

    async def verify_code(self, email: str, code: str) -> VerificationResult:
        if not email or not code:
            raise InvalidOtpRequest("Email and OTP are required")
        normalized = normalize_email(email)

        # Every write below is conditional on the entry still being the one we
        # read. Losing that race means a newer code (or another verifier) got
        # there first, so start over from the current state.
        for _ in range(_RACE_RETRIES):
            entry = await self._store.get(normalized)
            if entry is None:
                return self._fail(normalized, "not_found")

            if _now_utc() - entry.issued_at > self.ttl:
                if await self._store.delete(normalized, expected=entry):
                    return self._fail(normalized, "expired")
                continue

            if not secrets.compare_digest(code.strip().encode("utf-8"), entry.code.encode("utf-8")):
                # entry survives a mismatch so the user can retry within the TTL
                if not self.max_attempts:
                    return self._fail(normalized, "invalid_code")
                attempts = entry.attempts + 1
                if attempts >= self.max_attempts:
                    if await self._store.delete(normalized, expected=entry):
                        return self._fail(normalized, "too_many_attempts")
                elif await self._store.update(entry.model_copy(update={"attempts": attempts}), expected=entry):
                    return self._fail(normalized, "invalid_code")
                continue

            # single use: only the caller that actually removed the entry wins
            if await self._store.delete(normalized, expected=entry):
                OTP_VERIFIED.labels(outcome="valid").inc()
                logger.info("otp_verified", extra={"email": normalized, "role": entry.role})
                return VerificationResult(valid=True, role=entry.role, pending_profile=entry.pending_profile)

        logger.warning("otp_verify_contended", extra={"email": normalized})
        return self._fail(normalized, "not_found")

    def _fail(self, email: str, reason: str) -> VerificationResult:
        OTP_VERIFIED.labels(outcome=reason).inc()
        logger.info("otp_rejected", extra={"email": email, "reason": reason})
        return VerificationResult(valid=False, reason=reason)
