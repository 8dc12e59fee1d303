import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from propcare.core.database import Base
from propcare.models.organizations import Organization, Property
from propcare.schemas.invites import InviteRole
from propcare.schemas.organizations import MaintenanceRole


class Invite(Base):
    __tablename__ = "invites"

    id: Mapped[int] = mapped_column(primary_key=True, init=False)
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, repr=False)
    role: Mapped[InviteRole] = mapped_column(
        Enum(
            InviteRole,
            name="inviterole",
            values_callable=lambda enum_cls: [e.value for e in enum_cls],
        )
    )
    expires_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True))
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id"), index=True
    )
    organization: Mapped[Organization] = relationship(init=False)
    created_by: Mapped[int] = mapped_column(ForeignKey("users.id"))
    email: Mapped[str | None] = mapped_column(index=True, default=None)
    phone: Mapped[str | None] = mapped_column(index=True, default=None)
    property_id: Mapped[int | None] = mapped_column(
        ForeignKey("properties.id"), default=None
    )
    property: Mapped[Property | None] = relationship(init=False)
    maintenance_role: Mapped[MaintenanceRole | None] = mapped_column(
        Enum(
            MaintenanceRole,
            name="maintenancerole",
            values_callable=lambda enum_cls: [e.value for e in enum_cls],
        ),
        default=None,
    )
    unit_number: Mapped[str | None] = mapped_column(String(32), default=None)
    accepted_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        insert_default=func.now(),
        server_default=func.now(),
        init=False,
    )
