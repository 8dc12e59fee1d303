import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import delete
from sqlalchemy.orm import Session

from propcare.core.config import get_settings
from propcare.core.database import utcnow
from propcare.core.errors import NotFound
from propcare.core.identifiers import (
    EntityKind,
    InternalId,
    find_by_opaque_id,
    resolve_internal_id,
    user_ref,
)
from propcare.core.security import hash_token
from propcare.core.tokens import (
    TokenClaims,
    TokenError,
    TokenKind,
    issue_access_token,
    issue_refresh_token,
    verify_token,
)
from propcare.models.users import User, UserSession

logger = logging.getLogger(__name__)
settings = get_settings()


class SessionError(Exception):
    pass


class InvalidRefreshToken(SessionError):
    pass


class UserNotFound(SessionError):
    pass


class SessionNotFound(SessionError):
    pass


@dataclass(frozen=True)
class IssuedTokens:
    access_token: str
    refresh_token: str
    claims: TokenClaims
    expires_at: datetime


def _issue_and_store(
    db: Session,
    user_id: InternalId,
    claims: TokenClaims,
    user_agent: str | None,
    ip_address: str | None,
) -> IssuedTokens:
    access_token = issue_access_token(claims)
    refresh_token = issue_refresh_token(claims)
    expires_at = utcnow() + settings.refresh_token_ttl

    db.add(
        UserSession(
            user_id=user_id.value,
            refresh_token_hash=hash_token(refresh_token),
            expires_at=expires_at,
            user_agent=user_agent[:512] if user_agent else None,
            ip_address=ip_address,
        )
    )
    return IssuedTokens(
        access_token=access_token,
        refresh_token=refresh_token,
        claims=claims,
        expires_at=expires_at,
    )


def start_session(
    db: Session,
    claims: TokenClaims,
    *,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> IssuedTokens:
    """Issue an access/refresh pair for ``claims`` and persist a new session."""
    try:
        user_id = resolve_internal_id(db, user_ref(claims.user_id))
    except NotFound as exc:
        raise UserNotFound("User not found") from exc

    issued = _issue_and_store(db, user_id, claims, user_agent, ip_address)
    db.commit()
    return issued


def rotate_session(
    db: Session,
    raw_refresh_token: str,
    *,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[User, IssuedTokens]:
    """
    Exchange a refresh token for a new access/refresh pair.

    The presented token's session row is consumed with a single conditional
    DELETE; only the caller that actually removed the row gets new tokens. A
    token that verifies but has no live row on file (already rotated, logged
    out, or never issued) is rejected with ``SessionNotFound``.
    """
    try:
        claims = verify_token(raw_refresh_token, TokenKind.refresh)
    except TokenError as exc:
        raise InvalidRefreshToken(str(exc)) from exc

    user = find_by_opaque_id(db, user_ref(claims.user_id))
    if user is None or user.archived_at is not None:
        raise UserNotFound("User not found")

    token_hash = hash_token(raw_refresh_token)
    now = utcnow()
    result = db.execute(
        delete(UserSession)
        .where(
            UserSession.user_id == user.id,
            UserSession.refresh_token_hash == token_hash,
            UserSession.expires_at > now,
        )
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        _drop_expired_match(db, token_hash, now)
        logger.warning("Refresh rejected: no live session for user %s", claims.user_id)
        raise SessionNotFound("Session not found")

    issued = _issue_and_store(
        db,
        InternalId(EntityKind.user, user.id),
        claims,
        user_agent,
        ip_address,
    )
    db.commit()
    return user, issued


def _drop_expired_match(db: Session, token_hash: str, now: datetime) -> None:
    result = db.execute(
        delete(UserSession)
        .where(
            UserSession.refresh_token_hash == token_hash,
            UserSession.expires_at <= now,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount:
        logger.info("Removed %s expired session(s) on lookup", result.rowcount)


def end_session(db: Session, raw_refresh_token: str | None) -> int:
    """Delete every session matching the token. Safe to call repeatedly."""
    if not raw_refresh_token:
        return 0
    result = db.execute(
        delete(UserSession)
        .where(UserSession.refresh_token_hash == hash_token(raw_refresh_token))
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount or 0


def revoke_user_sessions(
    db: Session, user_id: InternalId, *, keep_token: str | None = None
) -> int:
    stmt = delete(UserSession).where(UserSession.user_id == user_id.value)
    if keep_token:
        stmt = stmt.where(UserSession.refresh_token_hash != hash_token(keep_token))
    result = db.execute(stmt.execution_options(synchronize_session=False))
    db.commit()
    return result.rowcount or 0


def purge_expired_sessions(db: Session, *, now: datetime | None = None) -> int:
    """
    Delete sessions past their absolute expiry.

    Returns the number of rows removed.
    """
    now = now or utcnow()
    result = db.execute(
        delete(UserSession)
        .where(UserSession.expires_at <= now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount or 0
