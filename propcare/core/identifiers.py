"""
Opaque identifier layer.

Rows carry two keys: a sequential ``id`` used for joins inside the database and
a random ``opaque_id`` that is the only identifier allowed in tokens, URLs and
API payloads. The wrapper types below keep the two from being mixed up: code
that accepts an ``OpaqueId`` cannot be handed an ``InternalId`` by accident,
and every wrapper names the kind of entity it points at.
"""

from dataclasses import dataclass
from enum import StrEnum

from sqlalchemy import select
from sqlalchemy.orm import Session

from propcare.core.errors import NotFound
from propcare.models.organizations import Organization, Property
from propcare.models.users import User


class EntityKind(StrEnum):
    user = "user"
    organization = "organization"
    property = "property"


_MODELS = {
    EntityKind.user: User,
    EntityKind.organization: Organization,
    EntityKind.property: Property,
}

_LABELS = {
    EntityKind.user: "User",
    EntityKind.organization: "Organization",
    EntityKind.property: "Property",
}


@dataclass(frozen=True)
class OpaqueId:
    kind: EntityKind
    value: str

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class InternalId:
    kind: EntityKind
    value: int

    def __repr__(self) -> str:
        # Keep internal keys out of log lines and tracebacks.
        return f"InternalId({self.kind.value})"


def user_ref(value: str) -> OpaqueId:
    return OpaqueId(EntityKind.user, value)


def organization_ref(value: str) -> OpaqueId:
    return OpaqueId(EntityKind.organization, value)


def property_ref(value: str) -> OpaqueId:
    return OpaqueId(EntityKind.property, value)


def not_found(kind: EntityKind) -> NotFound:
    return NotFound(f"{_LABELS[kind]} not found")


def resolve_internal_id(db: Session, opaque_id: OpaqueId) -> InternalId:
    model = _MODELS[opaque_id.kind]
    internal = db.execute(
        select(model.id).where(model.opaque_id == opaque_id.value)
    ).scalar_one_or_none()
    if internal is None:
        raise not_found(opaque_id.kind)
    return InternalId(opaque_id.kind, internal)


def find_by_opaque_id(db: Session, opaque_id: OpaqueId):
    model = _MODELS[opaque_id.kind]
    return db.execute(
        select(model).where(model.opaque_id == opaque_id.value)
    ).scalar_one_or_none()


def load_by_opaque_id(db: Session, opaque_id: OpaqueId):
    row = find_by_opaque_id(db, opaque_id)
    if row is None:
        raise not_found(opaque_id.kind)
    return row
