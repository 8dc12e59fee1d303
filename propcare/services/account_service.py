import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from propcare.core.database import unit_of_work
from propcare.core.errors import AuthenticationFailed, AuthorizationDenied, Conflict
from propcare.core.identifiers import EntityKind, InternalId
from propcare.core.security import hash_password, verify_password
from propcare.core.tokens import TokenClaims
from propcare.models.organizations import Organization, OrgAdmin, Property, PropertyStaff, Tenant
from propcare.models.users import User
from propcare.schemas.organizations import OrganizationRegisterIn
from propcare.schemas.users import ORG_ADMIN_TYPES, UserType
from propcare.services.session_service import revoke_user_sessions

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"


@dataclass
class LoginContext:
    """What the client sees about a user right after signing in."""

    organization: Organization | None = None
    properties: list[Property] | None = None
    property: Property | None = None


def authenticate(db: Session, email: str, password: str) -> User:
    user = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if (
        not user
        or user.archived_at is not None
        or not verify_password(password, user.password_hash)
    ):
        raise AuthenticationFailed(INVALID_CREDENTIALS)

    if user.user_type in ORG_ADMIN_TYPES:
        link = user.org_admin
        if link is not None and link.archived_at is not None:
            raise AuthorizationDenied("Account has been deactivated")
    return user


def _active_staff_properties(db: Session, user: User) -> list[Property]:
    stmt = (
        select(Property)
        .join(PropertyStaff, PropertyStaff.property_id == Property.id)
        .where(
            PropertyStaff.user_id == user.id,
            PropertyStaff.archived_at.is_(None),
            Property.archived_at.is_(None),
        )
        .order_by(Property.id)
    )
    return list(db.execute(stmt).scalars())


def _active_tenancy(db: Session, user: User) -> Tenant | None:
    stmt = (
        select(Tenant)
        .where(Tenant.user_id == user.id, Tenant.archived_at.is_(None))
        .order_by(Tenant.id)
        .limit(1)
    )
    return db.execute(stmt).scalar_one_or_none()


def login_context(db: Session, user: User) -> LoginContext:
    if user.user_type in ORG_ADMIN_TYPES:
        link = user.org_admin
        return LoginContext(organization=link.organization if link else None)
    if user.user_type is UserType.staff:
        return LoginContext(properties=_active_staff_properties(db, user))
    if user.user_type is UserType.tenant:
        tenancy = _active_tenancy(db, user)
        return LoginContext(property=tenancy.property if tenancy else None)
    return LoginContext()


def build_claims(db: Session, user: User) -> TokenClaims:
    """
    Claims for a fresh login.

    Org admins carry their organization. Staff and tenants carry the
    organization of their first active property; tenants also carry that
    property.
    """
    organization_id = None
    property_id = None

    if user.user_type in ORG_ADMIN_TYPES:
        link = user.org_admin
        if link is not None:
            organization_id = link.organization.opaque_id
    elif user.user_type is UserType.staff:
        properties = _active_staff_properties(db, user)
        if properties:
            organization_id = properties[0].organization.opaque_id
    elif user.user_type is UserType.tenant:
        tenancy = _active_tenancy(db, user)
        if tenancy is not None:
            organization_id = tenancy.property.organization.opaque_id
            property_id = tenancy.property.opaque_id

    return TokenClaims(
        user_id=user.opaque_id,
        user_type=user.user_type,
        organization_id=organization_id,
        property_id=property_id,
    )


def register_organization(
    db: Session, payload: OrganizationRegisterIn
) -> tuple[User, Organization]:
    """Create an organization together with its owner account."""
    if db.execute(select(User.id).where(User.email == payload.email)).first():
        raise Conflict("User with this email already exists")
    if db.execute(
        select(Organization.id).where(Organization.name == payload.organization_name)
    ).first():
        raise Conflict("Organization with this name already exists")

    with unit_of_work(db):
        user = User(
            name=payload.name,
            password_hash=hash_password(payload.password.get_secret_value()),
            user_type=UserType.org_owner,
            email=payload.email,
        )
        organization = Organization(
            name=payload.organization_name,
            contact_info=payload.contact_info,
        )
        db.add_all([user, organization])
        db.flush()
        db.add(OrgAdmin(user_id=user.id, organization_id=organization.id))

    db.refresh(user)
    db.refresh(organization)
    logger.info("Registered organization %s", organization.opaque_id)
    return user, organization


def change_password(
    db: Session,
    user: User,
    current_password: str,
    new_password: str,
    *,
    keep_refresh_token: str | None = None,
) -> int:
    """
    Replace the user's password and end every other session.

    Returns the number of sessions revoked.
    """
    if not verify_password(current_password, user.password_hash):
        raise AuthenticationFailed("Current password is incorrect")
    if verify_password(new_password, user.password_hash):
        raise Conflict("New password must differ from the current password")

    user.password_hash = hash_password(new_password)
    db.commit()
    return revoke_user_sessions(
        db, InternalId(EntityKind.user, user.id), keep_token=keep_refresh_token
    )
