from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from .. import models, schemas, search
from ..database import transaction
from ..reference_ids import get_by_reference_id, next_reference_id
from ..errors import NotFound
from . import deletion, status_models
from .common import get_or_404, paginate, require_user, validate_priority
from .updates import apply_updates

# purpose: epic CRUD, status and assignment; deletes are delegated to the deletion engine
# status: active


def create_epic(db: Session, creator_id: UUID, payload: schemas.EpicCreate) -> models.Epic:
    validate_priority(payload.priority)
    with transaction(db):
        require_user(db, creator_id)
        assignee_id = creator_id
        if payload.assignee_id is not None:
            require_user(db, payload.assignee_id)
            assignee_id = payload.assignee_id
        epic = models.Epic(
            reference_id=next_reference_id(db, models.ENTITY_EPIC),
            creator_id=creator_id,
            assignee_id=assignee_id,
            priority=payload.priority,
            status=status_models.initial_status(db, models.ENTITY_EPIC),
            title=payload.title,
            description=payload.description,
        )
        db.add(epic)
        db.flush()
    search.index_entity(models.ENTITY_EPIC, epic)
    return epic


def get_epic(db: Session, epic_id: UUID) -> models.Epic:
    return get_or_404(db, models.Epic, epic_id, "epic")


def get_epic_by_reference(db: Session, reference_id: str) -> models.Epic:
    epic = get_by_reference_id(db, models.ENTITY_EPIC, reference_id)
    if epic is None:
        raise NotFound("epic not found")
    return epic


def list_epics(
    db: Session,
    *,
    creator_id: UUID | None = None,
    assignee_id: UUID | None = None,
    status: str | None = None,
    priority: int | None = None,
    order_by: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
):
    filters = {
        "creator_id": creator_id,
        "assignee_id": assignee_id,
        "status": status,
        "priority": priority,
    }
    return paginate(db.query(models.Epic), models.Epic, filters, order_by, limit, offset)


def update_epic(db: Session, epic_id: UUID, payload: schemas.EpicUpdate) -> models.Epic:
    with transaction(db):
        epic = get_epic(db, epic_id)
        apply_updates(db, models.ENTITY_EPIC, epic, payload.model_dump(exclude_unset=True))
        db.flush()
    search.index_entity(models.ENTITY_EPIC, epic)
    return epic


def change_status(db: Session, epic_id: UUID, status: str) -> models.Epic:
    return update_epic(db, epic_id, schemas.EpicUpdate(status=status))


def assign_epic(db: Session, epic_id: UUID, assignee_id: UUID | None) -> models.Epic:
    with transaction(db):
        epic = get_epic(db, epic_id)
        if assignee_id is not None:
            require_user(db, assignee_id)
        epic.assignee_id = assignee_id
        db.flush()
    return epic


def delete_epic(db: Session, epic_id: UUID, actor_id: UUID, force: bool = False) -> schemas.DeletionResult:
    return deletion.delete(db, models.ENTITY_EPIC, epic_id, actor_id, force)
