from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001_initial_schema"
down_revision = None
branch_labels: tuple[str, ...] | None = None
depends_on: tuple[str, ...] | None = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def upgrade() -> None:
    user_type_enum = sa.Enum(
        "org_owner",
        "org_admin",
        "staff",
        "tenant",
        name="usertype",
    )
    maintenance_role_enum = sa.Enum("manager", "member", name="maintenancerole")
    invite_role_enum = sa.Enum("org_admin", "staff", "tenant", name="inviterole")

    bind = op.get_bind()
    user_type_enum.create(bind, checkfirst=True)
    maintenance_role_enum.create(bind, checkfirst=True)
    invite_role_enum.create(bind, checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=False),
        sa.Column(
            "user_type",
            user_type_enum,
            nullable=False,
        ),
        sa.Column("email", sa.String(), nullable=True, unique=True),
        sa.Column("phone", sa.String(), nullable=True, unique=True),
        sa.Column("opaque_id", sa.String(36), nullable=False),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index("ix_users_opaque_id", "users", ["opaque_id"], unique=True)

    op.create_table(
        "organizations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("contact_info", sa.String(255), nullable=False),
        sa.Column("phone_number", sa.String(32), nullable=True),
        sa.Column("opaque_id", sa.String(36), nullable=False),
        _created_at(),
    )
    op.create_index(
        "ix_organizations_opaque_id", "organizations", ["opaque_id"], unique=True
    )

    op.create_table(
        "properties",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "organization_id",
            sa.Integer(),
            sa.ForeignKey("organizations.id"),
            nullable=False,
        ),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("street", sa.String(), nullable=False),
        sa.Column("city", sa.String(), nullable=False),
        sa.Column("zip", sa.String(20), nullable=False),
        sa.Column("state", sa.String(), nullable=True),
        sa.Column("country", sa.String(2), nullable=False),
        sa.Column("opaque_id", sa.String(36), nullable=False),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index("ix_properties_organization_id", "properties", ["organization_id"])
    op.create_index("ix_properties_opaque_id", "properties", ["opaque_id"], unique=True)

    op.create_table(
        "org_admins",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False, unique=True
        ),
        sa.Column(
            "organization_id",
            sa.Integer(),
            sa.ForeignKey("organizations.id"),
            nullable=False,
        ),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_org_admins_organization_id", "org_admins", ["organization_id"])

    op.create_table(
        "property_staff",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "property_id", sa.Integer(), sa.ForeignKey("properties.id"), nullable=False
        ),
        sa.Column(
            "role",
            maintenance_role_enum,
            nullable=False,
        ),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint(
            "user_id", "property_id", name="uq_property_staff_user_property"
        ),
    )
    op.create_index("ix_property_staff_user_id", "property_staff", ["user_id"])
    op.create_index("ix_property_staff_property_id", "property_staff", ["property_id"])

    op.create_table(
        "tenants",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "property_id", sa.Integer(), sa.ForeignKey("properties.id"), nullable=False
        ),
        sa.Column("unit_number", sa.String(32), nullable=True),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("user_id", "property_id", name="uq_tenants_user_property"),
    )
    op.create_index("ix_tenants_user_id", "tenants", ["user_id"])
    op.create_index("ix_tenants_property_id", "tenants", ["property_id"])

    op.create_table(
        "invites",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("token_hash", sa.String(64), nullable=False, unique=True),
        sa.Column(
            "role",
            invite_role_enum,
            nullable=False,
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "organization_id",
            sa.Integer(),
            sa.ForeignKey("organizations.id"),
            nullable=False,
        ),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("phone", sa.String(), nullable=True),
        sa.Column(
            "property_id", sa.Integer(), sa.ForeignKey("properties.id"), nullable=True
        ),
        sa.Column(
            "maintenance_role",
            maintenance_role_enum,
            nullable=True,
        ),
        sa.Column("unit_number", sa.String(32), nullable=True),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index("ix_invites_organization_id", "invites", ["organization_id"])
    op.create_index("ix_invites_email", "invites", ["email"])
    op.create_index("ix_invites_phone", "invites", ["phone"])

    op.create_table(
        "sessions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("refresh_token_hash", sa.String(64), nullable=False, unique=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("user_agent", sa.String(512), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        _created_at(),
    )
    op.create_index("ix_sessions_user_id", "sessions", ["user_id"])
    op.create_index(
        "ix_sessions_user_id_token_hash", "sessions", ["user_id", "refresh_token_hash"]
    )
    op.create_index("ix_sessions_expires_at", "sessions", ["expires_at"])


def downgrade() -> None:
    op.drop_index("ix_sessions_expires_at", table_name="sessions")
    op.drop_index("ix_sessions_user_id_token_hash", table_name="sessions")
    op.drop_index("ix_sessions_user_id", table_name="sessions")
    op.drop_table("sessions")

    op.drop_index("ix_invites_phone", table_name="invites")
    op.drop_index("ix_invites_email", table_name="invites")
    op.drop_index("ix_invites_organization_id", table_name="invites")
    op.drop_table("invites")

    op.drop_index("ix_tenants_property_id", table_name="tenants")
    op.drop_index("ix_tenants_user_id", table_name="tenants")
    op.drop_table("tenants")

    op.drop_index("ix_property_staff_property_id", table_name="property_staff")
    op.drop_index("ix_property_staff_user_id", table_name="property_staff")
    op.drop_table("property_staff")

    op.drop_index("ix_org_admins_organization_id", table_name="org_admins")
    op.drop_table("org_admins")

    op.drop_index("ix_properties_opaque_id", table_name="properties")
    op.drop_index("ix_properties_organization_id", table_name="properties")
    op.drop_table("properties")

    op.drop_index("ix_organizations_opaque_id", table_name="organizations")
    op.drop_table("organizations")

    op.drop_index("ix_users_opaque_id", table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    sa.Enum(name="inviterole").drop(bind, checkfirst=True)
    sa.Enum(name="maintenancerole").drop(bind, checkfirst=True)
    sa.Enum(name="usertype").drop(bind, checkfirst=True)
