from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from propcare.api.deps import (
    client_details,
    require_org_access,
    require_property_access,
    set_refresh_cookie,
)
from propcare.core.database import get_db
from propcare.core.tokens import TokenClaims
from propcare.schemas.auth import AuthOut
from propcare.schemas.organizations import (
    MaintenanceRole,
    OrganizationOut,
    OrganizationRegisterIn,
    PropertyCreate,
    PropertyOut,
    StaffMemberOut,
)
from propcare.schemas.users import ORG_ADMIN_TYPES, UserOut, UserType
from propcare.services import account_service, property_service, session_service
from propcare.services.authorization import AccessScope, requires

router = APIRouter(prefix="/organizations", tags=["organizations"])

ORG_ADMINS = requires(ORG_ADMIN_TYPES)
ORG_MEMBERS = requires(ORG_ADMIN_TYPES | {UserType.staff}, allow_staff=True)
PROPERTY_READERS = requires(
    ORG_ADMIN_TYPES | {UserType.staff, UserType.tenant},
    allow_staff=True,
    allow_tenants=True,
)
STAFF_MANAGERS = requires(
    ORG_ADMIN_TYPES | {UserType.staff},
    allow_staff=True,
    maintenance_roles=[MaintenanceRole.manager],
)


@router.post(
    "/register",
    response_model=AuthOut,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
def register_organization(
    payload: OrganizationRegisterIn,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
):
    user, organization = account_service.register_organization(db, payload)
    claims = TokenClaims(
        user_id=user.opaque_id,
        user_type=user.user_type,
        organization_id=organization.opaque_id,
    )
    user_agent, ip_address = client_details(request)
    issued = session_service.start_session(
        db, claims, user_agent=user_agent, ip_address=ip_address
    )

    response.headers["Cache-Control"] = "no-store"
    set_refresh_cookie(response, issued.refresh_token)
    return AuthOut(
        access_token=issued.access_token,
        user=UserOut.from_model(user),
        organization=OrganizationOut.from_model(organization),
    )


@router.get("/{organization_id}", response_model=OrganizationOut)
def get_organization(scope: AccessScope = Depends(require_org_access(ORG_MEMBERS))):
    return OrganizationOut.from_model(scope.organization)


@router.post(
    "/{organization_id}/properties",
    response_model=PropertyOut,
    status_code=status.HTTP_201_CREATED,
)
def create_property(
    payload: PropertyCreate,
    scope: AccessScope = Depends(require_org_access(ORG_ADMINS)),
    db: Session = Depends(get_db),
):
    prop = property_service.create_property(db, scope.organization, payload)
    return PropertyOut.from_model(prop)


@router.get("/{organization_id}/properties", response_model=list[PropertyOut])
def list_properties(
    scope: AccessScope = Depends(require_org_access(ORG_MEMBERS)),
    db: Session = Depends(get_db),
):
    if scope.user_type is UserType.staff:
        properties = property_service.list_assigned_properties(
            db, scope.organization, scope.user_id
        )
    else:
        properties = property_service.list_properties(db, scope.organization)
    return [PropertyOut.from_model(p) for p in properties]


@router.get("/{organization_id}/properties/{property_id}", response_model=PropertyOut)
def get_property(scope: AccessScope = Depends(require_property_access(PROPERTY_READERS))):
    return PropertyOut.from_model(scope.property)


@router.delete("/{organization_id}/properties/{property_id}", response_model=PropertyOut)
def archive_property(
    scope: AccessScope = Depends(require_property_access(ORG_ADMINS)),
    db: Session = Depends(get_db),
):
    prop = property_service.archive_property(db, scope.property)
    return PropertyOut.from_model(prop)


@router.get(
    "/{organization_id}/properties/{property_id}/staff",
    response_model=list[StaffMemberOut],
)
def list_property_staff(
    scope: AccessScope = Depends(require_property_access(STAFF_MANAGERS)),
    db: Session = Depends(get_db),
):
    return [
        StaffMemberOut(
            user=UserOut.from_model(link.user),
            role=link.role,
            archived_at=link.archived_at,
        )
        for link in property_service.list_property_staff(db, scope.property)
    ]
