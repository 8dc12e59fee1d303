from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from propcare.api.auth import build_auth_out
from propcare.api.deps import (
    client_details,
    get_optional_claims,
    require_access,
    set_refresh_cookie,
)
from propcare.core.database import get_db
from propcare.core.tokens import TokenClaims
from propcare.schemas.auth import AuthOut
from propcare.schemas.invites import (
    InviteAcceptIn,
    InviteCreate,
    InviteCreatedOut,
    InviteDelivery,
    InviteDetailsEnvelope,
    InviteDetailsOut,
    InviteOut,
)
from propcare.schemas.users import ORG_ADMIN_TYPES
from propcare.services import invite_service, session_service
from propcare.services.authorization import AccessScope, requires
from propcare.services.notifications import deliver_invite

router = APIRouter(prefix="/invites", tags=["invites"])

ORG_ADMINS_ONLY = requires(ORG_ADMIN_TYPES)


@router.post("", response_model=InviteCreatedOut, status_code=status.HTTP_201_CREATED)
def create_invite(
    payload: InviteCreate,
    bg: BackgroundTasks,
    send_email: bool = Query(default=False, alias="email"),
    send_phone: bool = Query(default=False, alias="phone"),
    scope: AccessScope = Depends(require_access(ORG_ADMINS_ONLY)),
    db: Session = Depends(get_db),
):
    invite, event = invite_service.create_invite(
        db, scope, payload, send_email=send_email, send_phone=send_phone
    )
    bg.add_task(deliver_invite, event)
    return InviteCreatedOut(
        delivery=InviteDelivery(email=send_email, phone=send_phone),
        invite=InviteOut.from_model(invite),
    )


@router.get("/{token}", response_model=InviteDetailsEnvelope)
def get_invite(token: str, db: Session = Depends(get_db)):
    invite = invite_service.get_invite(db, token)
    return InviteDetailsEnvelope(invite=InviteDetailsOut.from_model(invite))


@router.post(
    "/{token}/accept",
    response_model=AuthOut,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
def accept_invite(
    token: str,
    payload: InviteAcceptIn,
    request: Request,
    response: Response,
    claims: TokenClaims | None = Depends(get_optional_claims),
    db: Session = Depends(get_db),
):
    accepted = invite_service.accept_invite(db, token, payload, claims)
    user_agent, ip_address = client_details(request)
    issued = session_service.start_session(
        db, accepted.claims, user_agent=user_agent, ip_address=ip_address
    )

    response.headers["Cache-Control"] = "no-store"
    set_refresh_cookie(response, issued.refresh_token)
    return build_auth_out(db, accepted.user, issued.access_token)
