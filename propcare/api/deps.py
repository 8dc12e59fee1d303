from collections.abc import Callable

from fastapi import Depends, Request, Response
from sqlalchemy.orm import Session

from propcare.core.config import get_settings
from propcare.core.database import get_db
from propcare.core.errors import AuthenticationFailed
from propcare.core.identifiers import (
    EntityKind,
    load_by_opaque_id,
    not_found,
    organization_ref,
    property_ref,
)
from propcare.core.tokens import (
    TokenClaims,
    TokenError,
    TokenExpired,
    TokenKind,
    TokenMalformed,
    verify_token,
)
from propcare.models.organizations import Organization, Property
from propcare.services.authorization import AccessRequirement, AccessScope, resolve_access

REFRESH_COOKIE = "refreshToken"

_BEARER_CHALLENGE = {"WWW-Authenticate": "Bearer"}


def _unauthenticated(detail: str, code: str) -> AuthenticationFailed:
    return AuthenticationFailed(detail, code=code, headers=_BEARER_CHALLENGE)


def _extract_bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None

    scheme, _, param = auth_header.strip().partition(" ")
    if scheme.lower() != "bearer" or not param.strip():
        raise _unauthenticated("Invalid authorization header", "INVALID_TOKEN")
    return param.strip()


def _claims_from_token(raw_token: str) -> TokenClaims:
    try:
        return verify_token(raw_token, TokenKind.access)
    except TokenExpired:
        raise _unauthenticated("Token expired", "TOKEN_EXPIRED")
    except TokenMalformed:
        raise _unauthenticated("Invalid token", "INVALID_TOKEN")


def get_current_claims(request: Request) -> TokenClaims:
    raw_token = _extract_bearer_token(request)
    if not raw_token:
        raise _unauthenticated("Not authenticated", "NOT_AUTHENTICATED")
    return _claims_from_token(raw_token)


def get_optional_claims(request: Request) -> TokenClaims | None:
    """
    Claims for routes that also serve anonymous callers.

    A missing, malformed or expired bearer is treated as no bearer at all.
    """
    scheme, _, param = request.headers.get("Authorization", "").strip().partition(" ")
    if scheme.lower() != "bearer" or not param.strip():
        return None
    try:
        return verify_token(param.strip(), TokenKind.access)
    except TokenError:
        return None


def resolve_organization(
    organization_id: str,
    db: Session = Depends(get_db),
) -> Organization:
    return load_by_opaque_id(db, organization_ref(organization_id))


def resolve_property(
    property_id: str,
    organization: Organization = Depends(resolve_organization),
    db: Session = Depends(get_db),
) -> Property:
    prop = load_by_opaque_id(db, property_ref(property_id))
    if prop.organization_id != organization.id:
        raise not_found(EntityKind.property)
    return prop


def require_access(requirement: AccessRequirement) -> Callable[..., AccessScope]:
    """Dependency for routes scoped by the caller's claims only."""

    def dependency(
        claims: TokenClaims = Depends(get_current_claims),
        db: Session = Depends(get_db),
    ) -> AccessScope:
        return resolve_access(db, claims, requirement)

    return dependency


def require_org_access(requirement: AccessRequirement) -> Callable[..., AccessScope]:
    """Dependency for routes under ``/organizations/{organizationId}``."""

    def dependency(
        claims: TokenClaims = Depends(get_current_claims),
        organization: Organization = Depends(resolve_organization),
        db: Session = Depends(get_db),
    ) -> AccessScope:
        return resolve_access(db, claims, requirement, organization=organization)

    return dependency


def require_property_access(requirement: AccessRequirement) -> Callable[..., AccessScope]:
    """Dependency for routes under ``.../properties/{propertyId}``."""

    def dependency(
        claims: TokenClaims = Depends(get_current_claims),
        organization: Organization = Depends(resolve_organization),
        prop: Property = Depends(resolve_property),
        db: Session = Depends(get_db),
    ) -> AccessScope:
        return resolve_access(
            db, claims, requirement, organization=organization, prop=prop
        )

    return dependency


def set_refresh_cookie(response: Response, refresh_token: str) -> None:
    settings = get_settings()
    response.set_cookie(
        key=REFRESH_COOKIE,
        value=refresh_token,
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
        max_age=int(settings.refresh_token_ttl.total_seconds()),
        path="/",
    )


def clear_refresh_cookie(response: Response) -> None:
    settings = get_settings()
    response.delete_cookie(
        key=REFRESH_COOKIE,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
    )


def client_details(request: Request) -> tuple[str | None, str | None]:
    user_agent = request.headers.get("User-Agent")
    ip_address = request.client.host if request.client else None
    return user_agent, ip_address
