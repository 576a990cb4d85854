"""Base models for all entities."""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, timezone
import secrets
import string
import time
import uuid

_CLAIM_NUMBER_ALPHABET = string.ascii_uppercase + string.digits


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_id(prefix: str = "") -> str:
    """Generate a unique ID with optional prefix."""
    unique_part = uuid.uuid4().hex[:12]
    return f"{prefix}_{unique_part}" if prefix else unique_part


def generate_claim_number(prefix: str = "CLM", random_length: int = 8) -> str:
    """
    Generate a human-facing claim number.

    Format is PREFIX-<last 8 digits of epoch millis>-<random base36>, e.g.
    CLM-41234567-K3Q9ZP2A. The store still enforces uniqueness.
    """
    timestamp = str(int(time.time() * 1000))[-8:]
    random_part = "".join(
        secrets.choice(_CLAIM_NUMBER_ALPHABET) for _ in range(random_length)
    )
    return f"{prefix}-{timestamp}-{random_part}"


class TimestampMixin(BaseModel):
    """Mixin for timestamp fields."""
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def touch(self):
        """Update the updated_at timestamp."""
        self.updated_at = utc_now()


class StatusChange(BaseModel):
    """Audit entry for one status transition. Never edited after creation."""
    changed_at: datetime = Field(default_factory=utc_now)
    from_status: str
    to_status: str
    actor: str
    notes: Optional[str] = None

    class Config:
        frozen = True
