import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any

import jwt

from propcare.core.config import get_settings
from propcare.schemas.users import UserType

settings = get_settings()
JWT_ALGO = settings.jwt_algo


class TokenKind(StrEnum):
    access = "access"
    refresh = "refresh"


class TokenError(Exception):
    pass


class TokenExpired(TokenError):
    pass


class TokenMalformed(TokenError):
    pass


@dataclass(frozen=True)
class TokenClaims:
    """Identity and scope hints carried by a token. All ids are opaque."""

    user_id: str
    user_type: UserType
    organization_id: str | None = None
    property_id: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "sub": self.user_id,
            "userType": self.user_type.value,
        }
        if self.organization_id:
            payload["organizationId"] = self.organization_id
        if self.property_id:
            payload["propertyId"] = self.property_id
        return payload

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "TokenClaims":
        sub = payload.get("sub")
        if not isinstance(sub, str) or not sub:
            raise TokenMalformed("Token is missing a subject")
        try:
            user_type = UserType(payload.get("userType"))
        except ValueError as exc:
            raise TokenMalformed("Token carries an unknown user type") from exc
        return cls(
            user_id=sub,
            user_type=user_type,
            organization_id=payload.get("organizationId"),
            property_id=payload.get("propertyId"),
        )


def _secret_for(kind: TokenKind) -> str:
    if kind is TokenKind.access:
        return settings.jwt_access_secret
    return settings.jwt_refresh_secret


def _ttl_for(kind: TokenKind) -> timedelta:
    if kind is TokenKind.access:
        return settings.access_token_ttl
    return settings.refresh_token_ttl


def create_token(claims: TokenClaims, kind: TokenKind) -> str:
    now = datetime.now(UTC)
    payload = claims.to_payload()
    payload.update(
        {
            "typ": kind.value,
            "jti": uuid.uuid4().hex,
            "iat": int(now.timestamp()),
            "exp": int((now + _ttl_for(kind)).timestamp()),
        }
    )
    return jwt.encode(payload, _secret_for(kind), algorithm=JWT_ALGO)


def issue_access_token(claims: TokenClaims) -> str:
    return create_token(claims, TokenKind.access)


def issue_refresh_token(claims: TokenClaims) -> str:
    return create_token(claims, TokenKind.refresh)


def verify_token(token: str, kind: TokenKind) -> TokenClaims:
    try:
        payload = jwt.decode(
            token,
            _secret_for(kind),
            algorithms=[JWT_ALGO],
            options={"require": ["exp", "iat", "sub"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise TokenExpired("Token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise TokenMalformed("Invalid token") from exc

    if payload.get("typ") != kind.value:
        raise TokenMalformed("Unexpected token type")
    return TokenClaims.from_payload(payload)
