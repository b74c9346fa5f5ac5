from datetime import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

Role = Literal["admin", "teacher", "parent"]


class PendingOtp(BaseModel):
    """One live code per email; replaced wholesale by the next request."""
    email: str
    code: str
    role: Role
    issued_at: datetime
    pending_profile: Dict[str, Any] = Field(default_factory=dict)
    attempts: int = 0  # mismatches so far, only consulted when a cap is configured


class VerificationResult(BaseModel):
    valid: bool
    reason: Optional[Literal["not_found", "expired", "invalid_code", "too_many_attempts"]] = None
    role: Optional[Role] = None
    pending_profile: Optional[Dict[str, Any]] = None
