import logging

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from propcare.api.deps import (
    REFRESH_COOKIE,
    clear_refresh_cookie,
    client_details,
    get_current_claims,
    set_refresh_cookie,
)
from propcare.core.database import get_db
from propcare.core.errors import AuthenticationFailed
from propcare.core.identifiers import find_by_opaque_id, user_ref
from propcare.core.tokens import TokenClaims
from propcare.models.users import User
from propcare.schemas.auth import AuthOut, MessageOut
from propcare.schemas.organizations import OrganizationOut, PropertyOut
from propcare.schemas.users import ChangePasswordIn, LoginIn, UserOut
from propcare.services import account_service, session_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

INVALID_REFRESH = "Invalid or expired refresh token"


def build_auth_out(db: Session, user: User, access_token: str) -> AuthOut:
    context = account_service.login_context(db, user)
    return AuthOut(
        access_token=access_token,
        user=UserOut.from_model(user),
        organization=(
            OrganizationOut.from_model(context.organization)
            if context.organization
            else None
        ),
        properties=(
            [PropertyOut.from_model(p) for p in context.properties]
            if context.properties is not None
            else None
        ),
        property=PropertyOut.from_model(context.property) if context.property else None,
    )


@router.post("/login", response_model=AuthOut, response_model_exclude_none=True)
def login(
    payload: LoginIn,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
):
    user = account_service.authenticate(
        db, payload.email, payload.password.get_secret_value()
    )
    claims = account_service.build_claims(db, user)
    user_agent, ip_address = client_details(request)
    issued = session_service.start_session(
        db, claims, user_agent=user_agent, ip_address=ip_address
    )

    response.headers["Cache-Control"] = "no-store"
    set_refresh_cookie(response, issued.refresh_token)
    return build_auth_out(db, user, issued.access_token)


@router.post("/refresh", response_model=AuthOut, response_model_exclude_none=True)
def refresh(request: Request, response: Response, db: Session = Depends(get_db)):
    raw_token = request.cookies.get(REFRESH_COOKIE)
    if not raw_token:
        raise AuthenticationFailed(INVALID_REFRESH)

    user_agent, ip_address = client_details(request)
    try:
        user, issued = session_service.rotate_session(
            db, raw_token, user_agent=user_agent, ip_address=ip_address
        )
    except session_service.SessionError as exc:
        logger.info("Refresh refused: %s", type(exc).__name__)
        raise AuthenticationFailed(INVALID_REFRESH) from exc

    response.headers["Cache-Control"] = "no-store"
    set_refresh_cookie(response, issued.refresh_token)
    return build_auth_out(db, user, issued.access_token)


@router.post("/logout", response_model=MessageOut)
def logout(request: Request, response: Response, db: Session = Depends(get_db)):
    session_service.end_session(db, request.cookies.get(REFRESH_COOKIE))
    clear_refresh_cookie(response)
    return MessageOut(message="Logged out successfully")


@router.post("/change-password", response_model=MessageOut)
def change_password(
    payload: ChangePasswordIn,
    request: Request,
    claims: TokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
):
    user = find_by_opaque_id(db, user_ref(claims.user_id))
    if user is None or user.archived_at is not None:
        raise AuthenticationFailed("User not found")

    revoked = account_service.change_password(
        db,
        user,
        payload.current_password.get_secret_value(),
        payload.new_password.get_secret_value(),
        keep_refresh_token=request.cookies.get(REFRESH_COOKIE),
    )
    logger.info("Password changed; revoked %s other session(s)", revoked)
    return MessageOut(message="Password updated")
