from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, EmailStr, Field, SecretStr, field_validator, model_validator

from propcare.schemas.common import CamelModel, normalize_email, normalize_phone
from propcare.schemas.organizations import MaintenanceRole, PropertyOut
from propcare.schemas.users import validate_new_password


class InviteRole(StrEnum):
    org_admin = "org_admin"
    staff = "staff"
    tenant = "tenant"


class InviteCreate(CamelModel):
    role: InviteRole
    email: EmailStr | None = None
    phone: str | None = None
    property_id: str | None = None
    maintenance_role: MaintenanceRole | None = None
    unit_number: str | None = Field(default=None, min_length=1)

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value):
        return normalize_email(value) if isinstance(value, str) else value

    @field_validator("phone")
    @classmethod
    def _normalize_phone(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return normalize_phone(value)

    @field_validator("unit_number", mode="before")
    @classmethod
    def _strip_unit(cls, value):
        return value.strip() if isinstance(value, str) else value

    @model_validator(mode="after")
    def _check_role_shape(self) -> "InviteCreate":
        if not self.email and not self.phone:
            raise ValueError("Invite requires an email or a phone number")

        if self.role is InviteRole.staff:
            if not self.property_id or not self.maintenance_role:
                raise ValueError("Staff invite requires propertyId and maintenanceRole")
            if self.unit_number:
                raise ValueError("Staff invite cannot include unitNumber")
        elif self.role is InviteRole.tenant:
            if not self.property_id:
                raise ValueError("Tenant invite requires propertyId")
            if self.maintenance_role:
                raise ValueError("Tenant invite cannot include maintenanceRole")
        elif self.role is InviteRole.org_admin:
            if self.property_id or self.maintenance_role or self.unit_number:
                raise ValueError(
                    "Org admin invite cannot include propertyId, maintenanceRole, or unitNumber"
                )
        return self


class InviteDelivery(BaseModel):
    email: bool
    phone: bool


class InviteOut(CamelModel):
    role: InviteRole
    email: str | None
    phone: str | None
    unit_number: str | None = None
    expires_at: datetime

    @classmethod
    def from_model(cls, invite) -> "InviteOut":
        return cls(
            role=invite.role,
            email=invite.email,
            phone=invite.phone,
            unit_number=invite.unit_number,
            expires_at=invite.expires_at,
        )


class InviteCreatedOut(CamelModel):
    message: str = "Invite sent"
    delivery: InviteDelivery
    invite: InviteOut


class InviteOrganizationOut(CamelModel):
    id: str
    name: str


class InviteDetailsOut(InviteOut):
    organization: InviteOrganizationOut | None = None
    property: PropertyOut | None = None

    @classmethod
    def from_model(cls, invite) -> "InviteDetailsOut":
        organization = invite.organization
        prop = invite.property
        return cls(
            role=invite.role,
            email=invite.email,
            phone=invite.phone,
            unit_number=invite.unit_number,
            expires_at=invite.expires_at,
            organization=(
                InviteOrganizationOut(id=organization.opaque_id, name=organization.name)
                if organization
                else None
            ),
            property=PropertyOut.from_model(prop) if prop else None,
        )


class InviteDetailsEnvelope(CamelModel):
    message: str = "Invite token details"
    invite: InviteDetailsOut


class InviteAcceptIn(CamelModel):
    name: str = Field(min_length=1)
    password: SecretStr
    unit_number: str | None = Field(default=None, min_length=1)

    @field_validator("name", "unit_number", mode="before")
    @classmethod
    def _strip(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("password")
    @classmethod
    def _check_password(cls, value: SecretStr) -> SecretStr:
        return validate_new_password(value)
