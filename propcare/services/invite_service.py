import logging
from dataclasses import dataclass

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from propcare.core.config import get_settings
from propcare.core.database import as_utc, unit_of_work, utcnow
from propcare.core.errors import (
    ApiError,
    AuthorizationDenied,
    Conflict,
    NotFound,
    ValidationFailed,
)
from propcare.core.identifiers import find_by_opaque_id, property_ref, user_ref
from propcare.core.security import generate_invite_token, hash_password, hash_token
from propcare.core.tokens import TokenClaims
from propcare.models.invites import Invite
from propcare.models.organizations import OrgAdmin, Property, PropertyStaff, Tenant
from propcare.models.users import User
from propcare.schemas.invites import InviteAcceptIn, InviteCreate, InviteRole
from propcare.schemas.users import UserType
from propcare.services.authorization import AccessScope
from propcare.services.notifications import InviteCreated

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass(frozen=True)
class AcceptedInvite:
    user: User
    invite: Invite
    claims: TokenClaims


def _require_frontend_url() -> str:
    frontend_url = settings.frontend_url
    if not frontend_url:
        raise ApiError("Invitation service is not configured")
    return frontend_url.rstrip("/")


def _ensure_unique_token_hash(db: Session, raw_token: str) -> tuple[str, str]:
    token_hash = hash_token(raw_token)
    existing = db.execute(
        select(Invite.id).where(Invite.token_hash == token_hash)
    ).first()
    if existing:
        return _ensure_unique_token_hash(db, generate_invite_token())
    return raw_token, token_hash


def _ensure_identity_available(db: Session, email: str | None, phone: str | None) -> None:
    if email and db.execute(select(User.id).where(User.email == email)).first():
        raise Conflict("User with this email already exists")
    if phone and db.execute(select(User.id).where(User.phone == phone)).first():
        raise Conflict("User with this phone number already exists")


def _has_pending_invite(
    db: Session, organization_id: int, email: str | None, phone: str | None
) -> bool:
    matches = []
    if email:
        matches.append(Invite.email == email)
    if phone:
        matches.append(Invite.phone == phone)
    if not matches:
        return False

    stmt = (
        select(Invite.id)
        .where(Invite.organization_id == organization_id)
        .where(Invite.accepted_at.is_(None))
        .where(Invite.expires_at > utcnow())
        .where(or_(*matches))
        .limit(1)
    )
    return db.execute(stmt).first() is not None


def _invite_property(db: Session, scope: AccessScope, property_id: str) -> Property:
    prop = find_by_opaque_id(db, property_ref(property_id))
    if prop is None or prop.organization_id != scope.organization.id:
        raise NotFound("Property not found")
    if prop.archived_at is not None:
        raise ValidationFailed("Property is archived")
    return prop


def create_invite(
    db: Session,
    scope: AccessScope,
    payload: InviteCreate,
    *,
    send_email: bool,
    send_phone: bool,
) -> tuple[Invite, InviteCreated]:
    """
    Persist a new invite issued by an organization admin.

    Returns the stored invite and the delivery message to hand off once the
    response is sent. Nothing is delivered from here.
    """
    if not send_email and not send_phone:
        raise ValidationFailed("At least one delivery method (email or phone) must be true")
    if send_email and not payload.email:
        raise ValidationFailed("Cannot send via email - no email address provided")
    if send_phone and not payload.phone:
        raise ValidationFailed("Cannot send via phone - no phone number provided")

    organization = scope.organization
    base_url = _require_frontend_url()

    prop = None
    if payload.property_id:
        prop = _invite_property(db, scope, payload.property_id)

    _ensure_identity_available(db, payload.email, payload.phone)
    if _has_pending_invite(db, organization.id, payload.email, payload.phone):
        raise Conflict("A pending invite already exists for this contact")

    token, token_hash = _ensure_unique_token_hash(db, generate_invite_token())
    invite = Invite(
        token_hash=token_hash,
        role=payload.role,
        expires_at=(utcnow() + settings.invite_ttl).replace(microsecond=0),
        organization_id=organization.id,
        created_by=scope.user_id.value,
        email=payload.email,
        phone=payload.phone,
        property_id=prop.id if prop else None,
        maintenance_role=payload.maintenance_role,
        unit_number=payload.unit_number,
    )
    db.add(invite)
    db.commit()
    db.refresh(invite)

    logger.info("Created %s invite for organization %s", invite.role.value, organization.opaque_id)
    event = InviteCreated(
        role=invite.role,
        organization_name=organization.name,
        accept_link=f"{base_url}/invites/{token}/accept",
        email=invite.email,
        phone=invite.phone,
        send_email=send_email,
        send_phone=send_phone,
    )
    return invite, event


def validate_invite(invite: Invite | None) -> Invite:
    if invite is None:
        raise NotFound("Invalid or expired invite")
    if invite.accepted_at is not None:
        raise ValidationFailed("Invite already accepted", code="INVITE_ACCEPTED")
    if as_utc(invite.expires_at) < utcnow():
        raise ValidationFailed("Invite expired", code="INVITE_EXPIRED")
    return invite


def get_invite(db: Session, token: str) -> Invite:
    invite = db.execute(
        select(Invite).where(Invite.token_hash == hash_token(token))
    ).scalar_one_or_none()
    return validate_invite(invite)


def _create_role_relationship(
    db: Session, user: User, invite: Invite, unit_number: str | None
) -> None:
    if invite.role is InviteRole.org_admin:
        db.add(OrgAdmin(user_id=user.id, organization_id=invite.organization_id))
    elif invite.role is InviteRole.staff:
        if invite.property_id is None or invite.maintenance_role is None:
            raise ValidationFailed("Invalid staff invite configuration")
        db.add(
            PropertyStaff(
                user_id=user.id,
                property_id=invite.property_id,
                role=invite.maintenance_role,
            )
        )
    elif invite.role is InviteRole.tenant:
        if invite.property_id is None:
            raise ValidationFailed("Tenant invite must include a property")
        db.add(
            Tenant(
                user_id=user.id,
                property_id=invite.property_id,
                unit_number=unit_number,
            )
        )
    else:
        raise ValidationFailed("Unsupported invite role")


def _claims_for(user: User, invite: Invite) -> TokenClaims:
    property_id = None
    if invite.role in (InviteRole.staff, InviteRole.tenant) and invite.property:
        property_id = invite.property.opaque_id
    return TokenClaims(
        user_id=user.opaque_id,
        user_type=user.user_type,
        organization_id=invite.organization.opaque_id,
        property_id=property_id,
    )


def _check_acceptor(db: Session, invite: Invite, claims: TokenClaims) -> None:
    current = find_by_opaque_id(db, user_ref(claims.user_id))
    if current is None:
        return
    if current.id == invite.created_by:
        raise AuthorizationDenied("You cannot accept an invite you created")
    same_email = bool(invite.email) and current.email == invite.email
    same_phone = bool(invite.phone) and current.phone == invite.phone
    if not (same_email or same_phone):
        raise AuthorizationDenied(
            "This invite is for a different user. Please log out to accept this invite."
        )


def accept_invite(
    db: Session,
    token: str,
    payload: InviteAcceptIn,
    current_claims: TokenClaims | None = None,
) -> AcceptedInvite:
    """
    Turn a pending invite into a new account.

    The user, its role link and the invite's accepted mark are written in one
    transaction. The accepted mark is a conditional UPDATE, so of two
    concurrent acceptances of the same token only one can commit.
    """
    invite = get_invite(db, token)
    if not invite.email and not invite.phone:
        raise ApiError("Invite has no contact to register")

    unit_number = payload.unit_number or invite.unit_number
    if invite.role is InviteRole.tenant and not unit_number:
        raise ValidationFailed("Unit number is required for tenant registration")

    if current_claims is not None:
        _check_acceptor(db, invite, current_claims)

    _ensure_identity_available(db, invite.email, invite.phone)

    with unit_of_work(db):
        user = User(
            name=payload.name,
            password_hash=hash_password(payload.password.get_secret_value()),
            user_type=UserType(invite.role.value),
            email=invite.email,
            phone=invite.phone,
        )
        db.add(user)
        db.flush()

        _create_role_relationship(db, user, invite, unit_number)

        result = db.execute(
            update(Invite)
            .where(Invite.id == invite.id, Invite.accepted_at.is_(None))
            .values(accepted_at=utcnow())
        )
        if result.rowcount != 1:
            raise ValidationFailed("Invite already accepted", code="INVITE_ACCEPTED")

    db.refresh(invite)
    db.refresh(user)
    logger.info("Invite accepted; created %s user", user.user_type.value)
    return AcceptedInvite(user=user, invite=invite, claims=_claims_for(user, invite))
