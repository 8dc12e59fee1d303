import re
from enum import StrEnum

from pydantic import EmailStr, SecretStr, field_validator

from propcare.schemas.common import CamelModel, normalize_email


class UserType(StrEnum):
    org_owner = "org_owner"
    org_admin = "org_admin"
    staff = "staff"
    tenant = "tenant"


ORG_ADMIN_TYPES = frozenset({UserType.org_owner, UserType.org_admin})

_PASSWORD_RULES = (
    (re.compile(r"[A-Z]"), "Password must contain an uppercase letter"),
    (re.compile(r"[a-z]"), "Password must contain a lowercase letter"),
    (re.compile(r"[0-9]"), "Password must contain a number"),
    (re.compile(r"[^A-Za-z0-9]"), "Password must contain a special character"),
)


def validate_new_password(value: SecretStr) -> SecretStr:
    raw = value.get_secret_value()
    if len(raw) < 8:
        raise ValueError("Password must be at least 8 characters")
    if len(raw) > 72:
        raise ValueError("Password cannot exceed 72 characters")
    if raw != raw.strip():
        raise ValueError("Password cannot start or end with spaces")
    for pattern, message in _PASSWORD_RULES:
        if not pattern.search(raw):
            raise ValueError(message)
    return value


class UserOut(CamelModel):
    id: str
    name: str
    email: str | None
    phone: str | None
    user_type: UserType

    @classmethod
    def from_model(cls, user) -> "UserOut":
        return cls(
            id=user.opaque_id,
            name=user.name,
            email=user.email,
            phone=user.phone,
            user_type=user.user_type,
        )


class LoginIn(CamelModel):
    email: EmailStr
    password: SecretStr

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return normalize_email(value) if isinstance(value, str) else value

    @field_validator("password")
    @classmethod
    def _check_password(cls, value: SecretStr) -> SecretStr:
        if not 1 <= len(value.get_secret_value()) <= 72:
            raise ValueError("Password must be between 1 and 72 characters")
        return value


class ChangePasswordIn(CamelModel):
    current_password: SecretStr
    new_password: SecretStr

    @field_validator("new_password")
    @classmethod
    def _check_new_password(cls, value: SecretStr) -> SecretStr:
        return validate_new_password(value)
