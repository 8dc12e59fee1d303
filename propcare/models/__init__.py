from propcare.core.database import Base
from propcare.models.invites import Invite
from propcare.models.organizations import (
    Organization,
    OrgAdmin,
    Property,
    PropertyStaff,
    Tenant,
)
from propcare.models.users import User, UserSession

__all__ = [
    "Base",
    "Invite",
    "OrgAdmin",
    "Organization",
    "Property",
    "PropertyStaff",
    "Tenant",
    "User",
    "UserSession",
]
