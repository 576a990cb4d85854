# app/models/user.py
from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional

from app.core.constants import UserRole
from app.models.base import TimestampMixin


def _strip_name(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = value.strip()
    if not value:
        raise ValueError("must not be blank")
    return value


class User(TimestampMixin):
    """Identity and contact record used for notification routing."""
    user_id: str
    email: EmailStr
    name: str
    phone: Optional[str] = None
    role: UserRole = UserRole.USER
    is_active: bool = True

    @field_validator("email")
    @classmethod
    def _lower_email(cls, value: str) -> str:
        return value.lower()


class UserCreate(BaseModel):
    email: EmailStr
    name: str = Field(..., min_length=1)
    phone: Optional[str] = None
    role: UserRole = UserRole.USER

    @field_validator("email")
    @classmethod
    def _lower_email(cls, value: str) -> str:
        return value.lower()

    @field_validator("name")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        return _strip_name(value)


class UserUpdate(BaseModel):
    """Profile edit; email and role are not editable here."""
    name: Optional[str] = Field(default=None, min_length=1)
    phone: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _not_blank(cls, value: Optional[str]) -> Optional[str]:
        return _strip_name(value)
