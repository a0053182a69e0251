from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from .. import models, schemas, search
from ..database import transaction
from ..errors import NotFound, ValidationError
from ..reference_ids import get_by_reference_id, next_reference_id
from . import deletion, status_models
from .common import get_or_404, paginate, require_user, validate_priority
from .updates import apply_updates

# purpose: requirement CRUD, weak acceptance-criteria links, and typed requirement relationships
# status: active

logger = logging.getLogger(__name__)


def _check_acceptance_criteria(db: Session, criteria_id: UUID, user_story_id: UUID) -> None:
    criteria = get_or_404(db, models.AcceptanceCriteria, criteria_id, "acceptance criteria")
    if criteria.user_story_id != user_story_id:
        raise ValidationError("acceptance criteria belongs to a different user story")


def create_requirement(
    db: Session, creator_id: UUID, payload: schemas.RequirementCreate
) -> models.Requirement:
    validate_priority(payload.priority)
    with transaction(db):
        get_or_404(db, models.UserStory, payload.user_story_id, "user story")
        get_or_404(db, models.RequirementType, payload.type_id, "requirement type")
        require_user(db, creator_id)
        assignee_id = creator_id
        if payload.assignee_id is not None:
            require_user(db, payload.assignee_id)
            assignee_id = payload.assignee_id
        if payload.acceptance_criteria_id is not None:
            _check_acceptance_criteria(db, payload.acceptance_criteria_id, payload.user_story_id)
        requirement = models.Requirement(
            reference_id=next_reference_id(db, models.ENTITY_REQUIREMENT),
            user_story_id=payload.user_story_id,
            acceptance_criteria_id=payload.acceptance_criteria_id,
            creator_id=creator_id,
            assignee_id=assignee_id,
            priority=payload.priority,
            status=status_models.initial_status(db, models.ENTITY_REQUIREMENT),
            type_id=payload.type_id,
            title=payload.title,
            description=payload.description,
        )
        db.add(requirement)
        db.flush()
    search.index_entity(models.ENTITY_REQUIREMENT, requirement)
    return requirement


def get_requirement(db: Session, requirement_id: UUID) -> models.Requirement:
    return get_or_404(db, models.Requirement, requirement_id, "requirement")


def get_requirement_by_reference(db: Session, reference_id: str) -> models.Requirement:
    requirement = get_by_reference_id(db, models.ENTITY_REQUIREMENT, reference_id)
    if requirement is None:
        raise NotFound("requirement not found")
    return requirement


def list_requirements(
    db: Session,
    *,
    user_story_id: UUID | None = None,
    acceptance_criteria_id: UUID | None = None,
    type_id: UUID | None = None,
    creator_id: UUID | None = None,
    assignee_id: UUID | None = None,
    status: str | None = None,
    priority: int | None = None,
    order_by: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
):
    filters = {
        "user_story_id": user_story_id,
        "acceptance_criteria_id": acceptance_criteria_id,
        "type_id": type_id,
        "creator_id": creator_id,
        "assignee_id": assignee_id,
        "status": status,
        "priority": priority,
    }
    return paginate(
        db.query(models.Requirement), models.Requirement, filters, order_by, limit, offset
    )


def list_by_user_story(db: Session, user_story_id: UUID) -> list[models.Requirement]:
    return (
        db.query(models.Requirement)
        .filter(models.Requirement.user_story_id == user_story_id)
        .order_by(models.Requirement.created_at, models.Requirement.id)
        .all()
    )


def list_by_acceptance_criteria(db: Session, criteria_id: UUID) -> list[models.Requirement]:
    return (
        db.query(models.Requirement)
        .filter(models.Requirement.acceptance_criteria_id == criteria_id)
        .order_by(models.Requirement.created_at, models.Requirement.id)
        .all()
    )


def update_requirement(
    db: Session, requirement_id: UUID, payload: schemas.RequirementUpdate
) -> models.Requirement:
    data = payload.model_dump(exclude_unset=True)
    with transaction(db):
        requirement = get_requirement(db, requirement_id)
        if data.get("type_id") is not None:
            get_or_404(db, models.RequirementType, data["type_id"], "requirement type")
            requirement.type_id = data["type_id"]
        if "acceptance_criteria_id" in data:
            criteria_id = data["acceptance_criteria_id"]
            if criteria_id is not None:
                _check_acceptance_criteria(db, criteria_id, requirement.user_story_id)
            requirement.acceptance_criteria_id = criteria_id
        apply_updates(db, models.ENTITY_REQUIREMENT, requirement, data)
        db.flush()
    search.index_entity(models.ENTITY_REQUIREMENT, requirement)
    return requirement


def change_status(db: Session, requirement_id: UUID, status: str) -> models.Requirement:
    return update_requirement(db, requirement_id, schemas.RequirementUpdate(status=status))


def assign_requirement(
    db: Session, requirement_id: UUID, assignee_id: UUID | None
) -> models.Requirement:
    with transaction(db):
        requirement = get_requirement(db, requirement_id)
        if assignee_id is not None:
            require_user(db, assignee_id)
        requirement.assignee_id = assignee_id
        db.flush()
    return requirement


def delete_requirement(
    db: Session, requirement_id: UUID, actor_id: UUID, force: bool = False
) -> schemas.DeletionResult:
    return deletion.delete(db, models.ENTITY_REQUIREMENT, requirement_id, actor_id, force)


def create_relationship(
    db: Session, created_by: UUID, payload: schemas.RelationshipCreate
) -> models.RequirementRelationship:
    if payload.source_requirement_id == payload.target_requirement_id:
        raise ValidationError("a requirement cannot have a relationship with itself")
    with transaction(db):
        get_or_404(db, models.Requirement, payload.source_requirement_id, "source requirement")
        get_or_404(db, models.Requirement, payload.target_requirement_id, "target requirement")
        get_or_404(db, models.RelationshipType, payload.relationship_type_id, "relationship type")
        require_user(db, created_by)
        duplicate = (
            db.query(models.RequirementRelationship)
            .filter_by(
                source_requirement_id=payload.source_requirement_id,
                target_requirement_id=payload.target_requirement_id,
                relationship_type_id=payload.relationship_type_id,
            )
            .first()
        )
        if duplicate:
            raise ValidationError("relationship already exists")
        relationship = models.RequirementRelationship(
            source_requirement_id=payload.source_requirement_id,
            target_requirement_id=payload.target_requirement_id,
            relationship_type_id=payload.relationship_type_id,
            created_by=created_by,
        )
        db.add(relationship)
        db.flush()
    return relationship


def delete_relationship(db: Session, relationship_id: UUID) -> None:
    with transaction(db):
        relationship = get_or_404(
            db, models.RequirementRelationship, relationship_id, "relationship"
        )
        db.delete(relationship)
        db.flush()
    logger.info("deleted requirement relationship", extra={"relationship_id": str(relationship_id)})


def list_relationships(db: Session, requirement_id: UUID) -> list[models.RequirementRelationship]:
    """Edges in both directions, oldest first."""

    return (
        db.query(models.RequirementRelationship)
        .filter(
            (models.RequirementRelationship.source_requirement_id == requirement_id)
            | (models.RequirementRelationship.target_requirement_id == requirement_id)
        )
        .order_by(models.RequirementRelationship.created_at, models.RequirementRelationship.id)
        .all()
    )
