from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from .. import models, schemas
from ..database import transaction
from ..errors import HasDependencies, ValidationError
from . import status_models
from .common import get_or_404

# purpose: requirement and relationship type catalogues plus idempotent default seeding
# status: active

logger = logging.getLogger(__name__)

DEFAULT_REQUIREMENT_TYPES = (
    ("Functional", "Functional requirements describing system behavior"),
    ("Non-Functional", "Non-functional requirements describing system qualities"),
    ("Business Rule", "Business rules and constraints"),
    ("Interface", "Interface and integration requirements"),
    ("Data", "Data requirements and constraints"),
)
DEFAULT_RELATIONSHIP_TYPES = (
    ("depends_on", "This requirement depends on the target requirement"),
    ("blocks", "This requirement blocks the target requirement"),
    ("relates_to", "This requirement is related to the target requirement"),
    ("conflicts_with", "This requirement conflicts with the target requirement"),
    ("derives_from", "This requirement is derived from the target requirement"),
)


def _create_type(db: Session, model, label: str, payload: schemas.TypeCreate):
    with transaction(db):
        if db.query(model).filter(model.name == payload.name).first():
            raise ValidationError(f"{label} with this name already exists")
        obj = model(name=payload.name, description=payload.description)
        db.add(obj)
        db.flush()
    return obj


def _update_type(db: Session, model, label: str, type_id: UUID, payload: schemas.TypeUpdate):
    with transaction(db):
        obj = get_or_404(db, model, type_id, label)
        data = payload.model_dump(exclude_unset=True)
        name = data.get("name")
        if name and name != obj.name:
            if db.query(model).filter(model.name == name).first():
                raise ValidationError(f"{label} with this name already exists")
            obj.name = name
        if "description" in data:
            obj.description = data["description"]
        db.flush()
    return obj


def create_requirement_type(db: Session, payload: schemas.TypeCreate) -> models.RequirementType:
    return _create_type(db, models.RequirementType, "requirement type", payload)


def get_requirement_type(db: Session, type_id: UUID) -> models.RequirementType:
    return get_or_404(db, models.RequirementType, type_id, "requirement type")


def list_requirement_types(db: Session) -> list[models.RequirementType]:
    return db.query(models.RequirementType).order_by(models.RequirementType.name).all()


def update_requirement_type(
    db: Session, type_id: UUID, payload: schemas.TypeUpdate
) -> models.RequirementType:
    return _update_type(db, models.RequirementType, "requirement type", type_id, payload)


def delete_requirement_type(db: Session, type_id: UUID) -> None:
    with transaction(db):
        obj = get_requirement_type(db, type_id)
        in_use = db.query(models.Requirement).filter(models.Requirement.type_id == type_id).count()
        if in_use:
            raise HasDependencies(f"requirement type is in use by {in_use} requirement(s)")
        db.delete(obj)
        db.flush()


def create_relationship_type(db: Session, payload: schemas.TypeCreate) -> models.RelationshipType:
    return _create_type(db, models.RelationshipType, "relationship type", payload)


def get_relationship_type(db: Session, type_id: UUID) -> models.RelationshipType:
    return get_or_404(db, models.RelationshipType, type_id, "relationship type")


def list_relationship_types(db: Session) -> list[models.RelationshipType]:
    return db.query(models.RelationshipType).order_by(models.RelationshipType.name).all()


def update_relationship_type(
    db: Session, type_id: UUID, payload: schemas.TypeUpdate
) -> models.RelationshipType:
    return _update_type(db, models.RelationshipType, "relationship type", type_id, payload)


def delete_relationship_type(db: Session, type_id: UUID) -> None:
    with transaction(db):
        obj = get_relationship_type(db, type_id)
        in_use = (
            db.query(models.RequirementRelationship)
            .filter(models.RequirementRelationship.relationship_type_id == type_id)
            .count()
        )
        if in_use:
            raise HasDependencies(f"relationship type is in use by {in_use} relationship(s)")
        db.delete(obj)
        db.flush()


def seed_defaults(db: Session) -> dict[str, int]:
    """Install default types and open workflows; existing rows are left alone."""

    created = {"requirement_types": 0, "relationship_types": 0, "status_models": 0}
    with transaction(db):
        for name, description in DEFAULT_REQUIREMENT_TYPES:
            if not db.query(models.RequirementType).filter_by(name=name).first():
                db.add(models.RequirementType(name=name, description=description))
                created["requirement_types"] += 1
        for name, description in DEFAULT_RELATIONSHIP_TYPES:
            if not db.query(models.RelationshipType).filter_by(name=name).first():
                db.add(models.RelationshipType(name=name, description=description))
                created["relationship_types"] += 1
        for entity_type in models.STATUS_ENTITIES:
            if status_models.get_default_model(db, entity_type) is None:
                status_models.install_default_model(db, entity_type)
                created["status_models"] += 1
        db.flush()
    logger.info("seeded defaults", extra={"seeded": created})
    return created
