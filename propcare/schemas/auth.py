from propcare.schemas.common import CamelModel
from propcare.schemas.organizations import OrganizationOut, PropertyOut
from propcare.schemas.users import UserOut


class AuthOut(CamelModel):
    access_token: str
    user: UserOut
    organization: OrganizationOut | None = None
    properties: list[PropertyOut] | None = None
    property: PropertyOut | None = None


class MessageOut(CamelModel):
    message: str
