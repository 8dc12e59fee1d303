import re
from datetime import datetime
from enum import StrEnum

from pydantic import EmailStr, Field, SecretStr, field_validator

from propcare.schemas.common import CamelModel, normalize_email
from propcare.schemas.users import UserOut, validate_new_password

_CONTACT_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_CONTACT_PHONE_RE = re.compile(r"^[\d\s\-+()]+$")


class MaintenanceRole(StrEnum):
    manager = "manager"
    member = "member"


class OrganizationRegisterIn(CamelModel):
    organization_name: str = Field(min_length=2, max_length=100)
    contact_info: str = Field(min_length=1, max_length=255)
    name: str = Field(min_length=1)
    email: EmailStr
    password: SecretStr

    @field_validator("organization_name", "contact_info", "name", mode="before")
    @classmethod
    def _strip(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value):
        return normalize_email(value) if isinstance(value, str) else value

    @field_validator("contact_info")
    @classmethod
    def _check_contact_info(cls, value: str) -> str:
        if _CONTACT_EMAIL_RE.match(value) or _CONTACT_PHONE_RE.match(value):
            return value
        raise ValueError("Contact info must be a valid email or phone number")

    @field_validator("password")
    @classmethod
    def _check_password(cls, value: SecretStr) -> SecretStr:
        return validate_new_password(value)


class OrganizationOut(CamelModel):
    id: str
    name: str
    contact_info: str | None = None
    has_phone: bool = False
    phone_number: str | None = None

    @classmethod
    def from_model(cls, organization) -> "OrganizationOut":
        return cls(
            id=organization.opaque_id,
            name=organization.name,
            contact_info=organization.contact_info,
            has_phone=bool(organization.phone_number),
            phone_number=organization.phone_number,
        )


class PropertyCreate(CamelModel):
    name: str = Field(min_length=1, max_length=200)
    street: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str | None = None
    zip: str = Field(min_length=1, max_length=20)
    country: str = Field(default="US", min_length=2, max_length=2)


class PropertyOut(CamelModel):
    id: str
    name: str
    street: str
    city: str
    state: str | None
    zip: str
    country: str
    archived_at: datetime | None = None

    @classmethod
    def from_model(cls, prop) -> "PropertyOut":
        return cls(
            id=prop.opaque_id,
            name=prop.name,
            street=prop.street,
            city=prop.city,
            state=prop.state,
            zip=prop.zip,
            country=prop.country,
            archived_at=prop.archived_at,
        )


class StaffMemberOut(CamelModel):
    user: UserOut
    role: MaintenanceRole
    archived_at: datetime | None = None
