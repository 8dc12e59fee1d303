import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from propcare.core.database import Base
from propcare.core.security import new_opaque_id
from propcare.schemas.users import UserType


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, init=False)
    name: Mapped[str]
    password_hash: Mapped[str] = mapped_column(repr=False)
    user_type: Mapped[UserType] = mapped_column(
        Enum(
            UserType,
            name="usertype",
            values_callable=lambda enum_cls: [e.value for e in enum_cls],
        )
    )
    email: Mapped[str | None] = mapped_column(unique=True, default=None)
    phone: Mapped[str | None] = mapped_column(unique=True, default=None)
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

    org_admin: Mapped[Optional["OrgAdmin"]] = relationship(  # noqa: F821
        back_populates="user", init=False
    )
    property_staff: Mapped[list["PropertyStaff"]] = relationship(  # noqa: F821
        back_populates="user", init=False
    )
    tenancies: Mapped[list["Tenant"]] = relationship(  # noqa: F821
        back_populates="user", init=False
    )
    sessions: Mapped[list["UserSession"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        init=False,
    )


class UserSession(Base):
    """One login lineage. Holds the HMAC of the current refresh token only."""

    __tablename__ = "sessions"

    id: Mapped[int] = mapped_column(primary_key=True, init=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    user: Mapped[User] = relationship(back_populates="sessions", init=False)
    refresh_token_hash: Mapped[str] = mapped_column(
        String(64), unique=True, repr=False
    )
    expires_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True))
    user_agent: Mapped[str | None] = mapped_column(String(512), default=None)
    ip_address: Mapped[str | None] = mapped_column(String(64), default=None)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        insert_default=func.now(),
        server_default=func.now(),
        init=False,
    )

    __table_args__ = (
        Index("ix_sessions_user_id_token_hash", "user_id", "refresh_token_hash"),
        Index("ix_sessions_expires_at", "expires_at"),
    )
