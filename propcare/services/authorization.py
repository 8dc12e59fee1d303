"""
Hierarchical authorization.

Every protected route declares an ``AccessRequirement``. ``resolve_access``
evaluates it against verified token claims and the organization/property the
request is scoped to, in a fixed order:

1. the caller's user type must be one of ``org_roles``;
2. org owners/admins need an active OrgAdmin link to the scoped organization;
3. staff need the route to admit staff, then an active PropertyStaff link to
   the scoped property (with an allowed maintenance role, if the route
   restricts roles) or, for organization-wide routes, at least one active
   link to a property of the organization;
4. tenants need the route to admit tenants and an active Tenant link to the
   scoped property.

The first failing check denies. There is no default-allow: ``org_roles`` has
no default, routes open to every role say so with ``ALL_ROLES``, and a user
type without a branch below is refused.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.orm import Session

from propcare.core.errors import AuthenticationFailed, AuthorizationDenied, MissingContext, NotFound
from propcare.core.identifiers import (
    InternalId,
    find_by_opaque_id,
    organization_ref,
    property_ref,
    resolve_internal_id,
    user_ref,
)
from propcare.core.tokens import TokenClaims
from propcare.models.organizations import (
    Organization,
    OrgAdmin,
    Property,
    PropertyStaff,
    Tenant,
)
from propcare.schemas.organizations import MaintenanceRole
from propcare.schemas.users import ORG_ADMIN_TYPES, UserType

logger = logging.getLogger(__name__)

ALL_ROLES = frozenset(UserType)


@dataclass(frozen=True)
class PropertyPolicy:
    allow_staff: bool = False
    allow_tenants: bool = False
    maintenance_roles: frozenset[MaintenanceRole] | None = None

    def __post_init__(self) -> None:
        if self.maintenance_roles is not None:
            object.__setattr__(self, "maintenance_roles", frozenset(self.maintenance_roles))


@dataclass(frozen=True)
class AccessRequirement:
    org_roles: frozenset[UserType]
    property: PropertyPolicy = field(default_factory=PropertyPolicy)

    def __post_init__(self) -> None:
        roles = frozenset(self.org_roles)
        if not roles:
            raise ValueError("AccessRequirement needs at least one role")
        object.__setattr__(self, "org_roles", roles)


def requires(
    roles: Iterable[UserType],
    *,
    allow_staff: bool = False,
    allow_tenants: bool = False,
    maintenance_roles: Iterable[MaintenanceRole] | None = None,
) -> AccessRequirement:
    return AccessRequirement(
        org_roles=frozenset(roles),
        property=PropertyPolicy(
            allow_staff=allow_staff,
            allow_tenants=allow_tenants,
            maintenance_roles=(
                frozenset(maintenance_roles) if maintenance_roles is not None else None
            ),
        ),
    )


@dataclass
class AccessScope:
    user_id: InternalId
    user_type: UserType
    organization: Organization | None
    property: Property | None
    staff_role: MaintenanceRole | None = None


def _scoped_organization(
    db: Session, claims: TokenClaims, organization: Organization | None
) -> Organization | None:
    if organization is not None or not claims.organization_id:
        return organization
    return find_by_opaque_id(db, organization_ref(claims.organization_id))


def _claimed_property(
    db: Session, claims: TokenClaims, organization: Organization | None
) -> Property | None:
    if not claims.property_id:
        return None
    prop = find_by_opaque_id(db, property_ref(claims.property_id))
    if prop is None:
        return None
    if organization is not None and prop.organization_id != organization.id:
        return None
    return prop


def _check_org_admin(
    db: Session, user_id: InternalId, organization: Organization | None
) -> None:
    if organization is None:
        raise MissingContext("Organization context required")

    link = db.execute(
        select(OrgAdmin).where(OrgAdmin.user_id == user_id.value)
    ).scalar_one_or_none()
    if link is None or link.archived_at is not None:
        raise AuthorizationDenied("Not an organization admin")
    if link.organization_id != organization.id:
        raise AuthorizationDenied("Access denied to this organization")


def _check_staff(
    db: Session,
    user_id: InternalId,
    policy: PropertyPolicy,
    organization: Organization | None,
    prop: Property | None,
) -> MaintenanceRole | None:
    if not policy.allow_staff:
        raise AuthorizationDenied("Staff access not permitted for this resource")

    if prop is not None:
        link = db.execute(
            select(PropertyStaff).where(
                PropertyStaff.user_id == user_id.value,
                PropertyStaff.property_id == prop.id,
                PropertyStaff.archived_at.is_(None),
            )
        ).scalar_one_or_none()
        if link is None:
            raise AuthorizationDenied("Access denied to this property")
        if (
            policy.maintenance_roles is not None
            and link.role not in policy.maintenance_roles
        ):
            raise AuthorizationDenied("Insufficient permissions for this action")
        return link.role

    if organization is None:
        raise MissingContext("Organization context required")

    assigned = db.execute(
        select(PropertyStaff.id)
        .join(Property, Property.id == PropertyStaff.property_id)
        .where(
            PropertyStaff.user_id == user_id.value,
            PropertyStaff.archived_at.is_(None),
            Property.organization_id == organization.id,
        )
        .limit(1)
    ).first()
    if assigned is None:
        raise AuthorizationDenied("Access denied to this organization")
    return None


def _check_tenant(
    db: Session,
    user_id: InternalId,
    policy: PropertyPolicy,
    prop: Property | None,
) -> None:
    if not policy.allow_tenants:
        raise AuthorizationDenied("Tenant access not permitted for this resource")
    if prop is None:
        raise MissingContext("Property context required")

    link = db.execute(
        select(Tenant).where(
            Tenant.user_id == user_id.value,
            Tenant.property_id == prop.id,
        )
    ).scalar_one_or_none()
    if link is None or link.archived_at is not None:
        raise AuthorizationDenied("Access denied to this property")


def resolve_access(
    db: Session,
    claims: TokenClaims,
    requirement: AccessRequirement,
    *,
    organization: Organization | None = None,
    prop: Property | None = None,
) -> AccessScope:
    """
    Decide whether ``claims`` may use a route declaring ``requirement``.

    ``organization`` and ``prop`` are the rows resolved from the request path,
    if any. Without a path organization the organization named in the claims
    is used; a tenant without a path property is scoped to the property named
    in the claims. Raises ``AuthorizationDenied`` (403) or ``MissingContext``
    (400) on the first failing check; returns the scope otherwise.
    """
    user_type = claims.user_type
    if user_type not in requirement.org_roles:
        raise AuthorizationDenied("Insufficient permissions")

    try:
        user_id = resolve_internal_id(db, user_ref(claims.user_id))
    except NotFound as exc:
        raise AuthenticationFailed("User not found") from exc

    organization = _scoped_organization(db, claims, organization)
    staff_role: MaintenanceRole | None = None

    if user_type in ORG_ADMIN_TYPES:
        _check_org_admin(db, user_id, organization)
    elif user_type is UserType.staff:
        staff_role = _check_staff(db, user_id, requirement.property, organization, prop)
    elif user_type is UserType.tenant:
        if prop is None:
            prop = _claimed_property(db, claims, organization)
        _check_tenant(db, user_id, requirement.property, prop)
    else:
        logger.warning("Denied request for unhandled user type %s", user_type)
        raise AuthorizationDenied("Insufficient permissions")

    return AccessScope(
        user_id=user_id,
        user_type=user_type,
        organization=organization,
        property=prop,
        staff_role=staff_role,
    )
