from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from uuid import UUID

from ..database import get_db
from ..auth import get_current_user, require_editor
from .. import models, schemas
from ..services import acceptance_criteria, deletion, requirements, user_stories
from ..services.common import resolve_identifier

router = APIRouter(prefix="/api/user-stories", tags=["user-stories"])


def _load(db: Session, identifier: str) -> models.UserStory:
    return resolve_identifier(db, models.ENTITY_USER_STORY, identifier, "user story")


@router.post("", response_model=schemas.UserStoryOut, status_code=201)
async def create_user_story(
    payload: schemas.UserStoryCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_editor(user)
    return user_stories.create_user_story(db, user.id, payload)


@router.get("", response_model=schemas.Page[schemas.UserStoryOut])
async def list_user_stories(
    epic_id: UUID | None = None,
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
    rows, total, limit, offset = user_stories.list_user_stories(
        db,
        epic_id=epic_id,
        creator_id=creator_id,
        assignee_id=assignee_id,
        status=status,
        priority=priority,
        order_by=order_by,
        limit=limit,
        offset=offset,
    )
    return schemas.page_of(schemas.UserStoryOut, rows, total, limit, offset)


@router.get("/{identifier}", response_model=schemas.UserStoryOut)
async def get_user_story(
    identifier: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return _load(db, identifier)


@router.put("/{identifier}", response_model=schemas.UserStoryOut)
async def update_user_story(
    identifier: str,
    payload: schemas.UserStoryUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_editor(user)
    return user_stories.update_user_story(db, _load(db, identifier).id, payload)


@router.patch("/{identifier}/status", response_model=schemas.UserStoryOut)
async def change_status(
    identifier: str,
    payload: schemas.StatusChange,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_editor(user)
    return user_stories.change_status(db, _load(db, identifier).id, payload.status)


@router.patch("/{identifier}/assign", response_model=schemas.UserStoryOut)
async def assign_user_story(
    identifier: str,
    payload: schemas.AssigneeChange,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_editor(user)
    return user_stories.assign_user_story(db, _load(db, identifier).id, payload.assignee_id)


@router.get("/{identifier}/acceptance-criteria", response_model=list[schemas.AcceptanceCriteriaOut])
async def list_acceptance_criteria(
    identifier: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return acceptance_criteria.list_by_user_story(db, _load(db, identifier).id)


@router.get("/{identifier}/requirements", response_model=list[schemas.RequirementOut])
async def list_requirements(
    identifier: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return requirements.list_by_user_story(db, _load(db, identifier).id)


@router.get("/{identifier}/validate-deletion", response_model=schemas.DependencyInfo)
async def validate_deletion(
    identifier: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return deletion.validate_delete(db, models.ENTITY_USER_STORY, _load(db, identifier).id)


@router.delete("/{identifier}", response_model=schemas.DeletionResult)
async def delete_user_story(
    identifier: str,
    force: bool = False,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_editor(user)
    return user_stories.delete_user_story(db, _load(db, identifier).id, user.id, force)
