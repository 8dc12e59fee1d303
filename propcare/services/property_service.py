import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from propcare.core.database import utcnow
from propcare.core.errors import ValidationFailed
from propcare.core.identifiers import InternalId
from propcare.models.organizations import Organization, Property, PropertyStaff
from propcare.schemas.organizations import PropertyCreate

logger = logging.getLogger(__name__)


def create_property(
    db: Session, organization: Organization, payload: PropertyCreate
) -> Property:
    prop = Property(
        organization_id=organization.id,
        name=payload.name,
        street=payload.street,
        city=payload.city,
        zip=payload.zip,
        state=payload.state,
        country=payload.country.upper(),
    )
    db.add(prop)
    db.commit()
    db.refresh(prop)
    logger.info("Created property %s", prop.opaque_id)
    return prop


def list_properties(db: Session, organization: Organization) -> list[Property]:
    stmt = select(Property).where(
        Property.organization_id == organization.id,
        Property.archived_at.is_(None),
    )
    return list(db.execute(stmt.order_by(Property.id)).scalars())


def archive_property(db: Session, prop: Property) -> Property:
    if prop.archived_at is not None:
        raise ValidationFailed("Property is already archived")
    prop.archived_at = utcnow()
    db.commit()
    db.refresh(prop)
    return prop


def list_property_staff(db: Session, prop: Property) -> list[PropertyStaff]:
    stmt = select(PropertyStaff).where(
        PropertyStaff.property_id == prop.id,
        PropertyStaff.archived_at.is_(None),
    )
    return list(db.execute(stmt.order_by(PropertyStaff.id)).scalars())


def list_assigned_properties(
    db: Session, organization: Organization, user_id: InternalId
) -> list[Property]:
    stmt = (
        select(Property)
        .join(PropertyStaff, PropertyStaff.property_id == Property.id)
        .where(
            Property.organization_id == organization.id,
            Property.archived_at.is_(None),
            PropertyStaff.user_id == user_id.value,
            PropertyStaff.archived_at.is_(None),
        )
        .order_by(Property.id)
    )
    return list(db.execute(stmt).scalars())
