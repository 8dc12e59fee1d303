import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from propcare.core.database import Base
from propcare.core.security import new_opaque_id
from propcare.models.users import User
from propcare.schemas.organizations import MaintenanceRole


class Organization(Base):
    __tablename__ = "organizations"

    id: Mapped[int] = mapped_column(primary_key=True, init=False)
    name: Mapped[str] = mapped_column(String(100), unique=True)
    contact_info: Mapped[str] = mapped_column(String(255))
    phone_number: Mapped[str | None] = mapped_column(String(32), default=None)
    opaque_id: Mapped[str] = mapped_column(
        String(36), unique=True, index=True, default_factory=new_opaque_id
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        insert_default=func.now(),
        server_default=func.now(),
        init=False,
    )

    properties: Mapped[list["Property"]] = relationship(
        back_populates="organization", init=False
    )
    admins: Mapped[list["OrgAdmin"]] = relationship(
        back_populates="organization", init=False
    )


class Property(Base):
    __tablename__ = "properties"

    id: Mapped[int] = mapped_column(primary_key=True, init=False)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id"), index=True
    )
    organization: Mapped[Organization] = relationship(
        back_populates="properties", init=False
    )
    name: Mapped[str] = mapped_column(String(200))
    street: Mapped[str]
    city: Mapped[str]
    zip: Mapped[str] = mapped_column(String(20))
    state: Mapped[str | None] = mapped_column(default=None)
    country: Mapped[str] = mapped_column(String(2), default="US")
    opaque_id: Mapped[str] = mapped_column(
        String(36), unique=True, index=True, default_factory=new_opaque_id
    )
    archived_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        insert_default=func.now(),
        server_default=func.now(),
        init=False,
    )

    staff: Mapped[list["PropertyStaff"]] = relationship(
        back_populates="property", init=False
    )


class OrgAdmin(Base):
    __tablename__ = "org_admins"

    id: Mapped[int] = mapped_column(primary_key=True, init=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), unique=True)
    user: Mapped[User] = relationship(back_populates="org_admin", init=False)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id"), index=True
    )
    organization: Mapped[Organization] = relationship(
        back_populates="admins", init=False
    )
    archived_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )


class PropertyStaff(Base):
    __tablename__ = "property_staff"

    id: Mapped[int] = mapped_column(primary_key=True, init=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    user: Mapped[User] = relationship(back_populates="property_staff", init=False)
    property_id: Mapped[int] = mapped_column(ForeignKey("properties.id"), index=True)
    property: Mapped[Property] = relationship(back_populates="staff", init=False)
    role: Mapped[MaintenanceRole] = mapped_column(
        Enum(
            MaintenanceRole,
            name="maintenancerole",
            values_callable=lambda enum_cls: [e.value for e in enum_cls],
        )
    )
    archived_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )

    __table_args__ = (
        UniqueConstraint("user_id", "property_id", name="uq_property_staff_user_property"),
    )


class Tenant(Base):
    __tablename__ = "tenants"

    id: Mapped[int] = mapped_column(primary_key=True, init=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    user: Mapped[User] = relationship(back_populates="tenancies", init=False)
    property_id: Mapped[int] = mapped_column(ForeignKey("properties.id"), index=True)
    property: Mapped[Property] = relationship(init=False)
    unit_number: Mapped[str | None] = mapped_column(String(32), default=None)
    archived_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )

    __table_args__ = (
        UniqueConstraint("user_id", "property_id", name="uq_tenants_user_property"),
    )
