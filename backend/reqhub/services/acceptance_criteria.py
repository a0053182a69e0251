from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from .. import models, schemas, search
from ..database import transaction
from ..errors import InvariantViolation, NotFound
from ..reference_ids import get_by_reference_id, next_reference_id
from . import comments, deletion
from .common import get_or_404, paginate

# purpose: acceptance criteria attached to user stories; a story keeps at least one once it has any
# status: active


def create_acceptance_criteria(
    db: Session, author_id: UUID, payload: schemas.AcceptanceCriteriaCreate
) -> models.AcceptanceCriteria:
    with transaction(db):
        get_or_404(db, models.UserStory, payload.user_story_id, "user story")
        get_or_404(db, models.User, author_id, "user")
        criteria = models.AcceptanceCriteria(
            reference_id=next_reference_id(db, models.ENTITY_ACCEPTANCE_CRITERIA),
            user_story_id=payload.user_story_id,
            author_id=author_id,
            description=payload.description,
        )
        db.add(criteria)
        db.flush()
    search.index_entity(models.ENTITY_ACCEPTANCE_CRITERIA, criteria)
    return criteria


def get_acceptance_criteria(db: Session, criteria_id: UUID) -> models.AcceptanceCriteria:
    return get_or_404(db, models.AcceptanceCriteria, criteria_id, "acceptance criteria")


def get_acceptance_criteria_by_reference(db: Session, reference_id: str) -> models.AcceptanceCriteria:
    criteria = get_by_reference_id(db, models.ENTITY_ACCEPTANCE_CRITERIA, reference_id)
    if criteria is None:
        raise NotFound("acceptance criteria not found")
    return criteria


def update_acceptance_criteria(
    db: Session, criteria_id: UUID, payload: schemas.AcceptanceCriteriaUpdate
) -> models.AcceptanceCriteria:
    with transaction(db):
        criteria = get_acceptance_criteria(db, criteria_id)
        if payload.description != criteria.description:
            criteria.description = payload.description
            db.flush()
            comments.on_description_changed(
                db, models.ENTITY_ACCEPTANCE_CRITERIA, criteria.id, criteria.description
            )
    search.index_entity(models.ENTITY_ACCEPTANCE_CRITERIA, criteria)
    return criteria


def list_acceptance_criteria(
    db: Session,
    *,
    user_story_id: UUID | None = None,
    author_id: UUID | None = None,
    order_by: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
):
    filters = {"user_story_id": user_story_id, "author_id": author_id}
    return paginate(
        db.query(models.AcceptanceCriteria),
        models.AcceptanceCriteria,
        filters,
        order_by,
        limit,
        offset,
    )


def list_by_user_story(db: Session, user_story_id: UUID) -> list[models.AcceptanceCriteria]:
    return (
        db.query(models.AcceptanceCriteria)
        .filter(models.AcceptanceCriteria.user_story_id == user_story_id)
        .order_by(models.AcceptanceCriteria.created_at, models.AcceptanceCriteria.id)
        .all()
    )


def count_by_user_story(db: Session, user_story_id: UUID) -> int:
    return (
        db.query(models.AcceptanceCriteria)
        .filter(models.AcceptanceCriteria.user_story_id == user_story_id)
        .count()
    )


def validate_user_story_has_acceptance_criteria(db: Session, user_story_id: UUID) -> None:
    get_or_404(db, models.UserStory, user_story_id, "user story")
    if count_by_user_story(db, user_story_id) == 0:
        raise InvariantViolation("user story must have at least one acceptance criteria")


def delete_acceptance_criteria(
    db: Session, criteria_id: UUID, actor_id: UUID, force: bool = False
) -> schemas.DeletionResult:
    return deletion.delete(db, models.ENTITY_ACCEPTANCE_CRITERIA, criteria_id, actor_id, force)
