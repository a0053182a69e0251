from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from uuid import UUID

from ..database import get_db
from ..auth import get_current_user, require_editor
from .. import models, schemas
from ..services import deletion, epics, user_stories
from ..services.common import resolve_identifier

router = APIRouter(prefix="/api/epics", tags=["epics"])


def _load(db: Session, identifier: str) -> models.Epic:
    return resolve_identifier(db, models.ENTITY_EPIC, identifier, "epic")


@router.post("", response_model=schemas.EpicOut, status_code=201)
async def create_epic(
    payload: schemas.EpicCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_editor(user)
    return epics.create_epic(db, user.id, payload)


@router.get("", response_model=schemas.Page[schemas.EpicOut])
async def list_epics(
    creator_id: UUID | None = None,
    assignee_id: UUID | None = None,
    status: str | None = None,
    priority: int | None = None,
    order_by: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    rows, total, limit, offset = epics.list_epics(
        db,
        creator_id=creator_id,
        assignee_id=assignee_id,
        status=status,
        priority=priority,
        order_by=order_by,
        limit=limit,
        offset=offset,
    )
    return schemas.page_of(schemas.EpicOut, rows, total, limit, offset)


@router.get("/{identifier}", response_model=schemas.EpicOut)
async def get_epic(
    identifier: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return _load(db, identifier)


@router.put("/{identifier}", response_model=schemas.EpicOut)
async def update_epic(
    identifier: str,
    payload: schemas.EpicUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_editor(user)
    return epics.update_epic(db, _load(db, identifier).id, payload)


@router.patch("/{identifier}/status", response_model=schemas.EpicOut)
async def change_status(
    identifier: str,
    payload: schemas.StatusChange,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_editor(user)
    return epics.change_status(db, _load(db, identifier).id, payload.status)


@router.patch("/{identifier}/assign", response_model=schemas.EpicOut)
async def assign_epic(
    identifier: str,
    payload: schemas.AssigneeChange,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_editor(user)
    return epics.assign_epic(db, _load(db, identifier).id, payload.assignee_id)


@router.get("/{identifier}/user-stories", response_model=list[schemas.UserStoryOut])
async def list_user_stories(
    identifier: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return user_stories.list_by_epic(db, _load(db, identifier).id)


@router.get("/{identifier}/validate-deletion", response_model=schemas.DependencyInfo)
async def validate_deletion(
    identifier: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return deletion.validate_delete(db, models.ENTITY_EPIC, _load(db, identifier).id)


@router.delete("/{identifier}", response_model=schemas.DeletionResult)
async def delete_epic(
    identifier: str,
    force: bool = False,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_editor(user)
    return epics.delete_epic(db, _load(db, identifier).id, user.id, force)
