from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from uuid import UUID

from ..database import get_db
from ..auth import get_current_user
from .. import models, schemas
from ..services import navigation

router = APIRouter(prefix="/api", tags=["navigation"])


@router.get("/hierarchy", response_model=schemas.Page[schemas.EpicNode])
async def get_hierarchy(
    expand: str | None = None,
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
    return navigation.get_hierarchy(
        db,
        expand=expand,
        creator_id=creator_id,
        assignee_id=assignee_id,
        status=status,
        priority=priority,
        order_by=order_by,
        limit=limit,
        offset=offset,
    )


@router.get("/hierarchy/epics/{epic_id}", response_model=schemas.EpicNode)
async def get_epic_hierarchy(
    epic_id: UUID,
    expand: str | None = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return navigation.get_epic_hierarchy(db, epic_id, expand)


@router.get("/hierarchy/user-stories/{story_id}", response_model=schemas.UserStoryNode)
async def get_user_story_hierarchy(
    story_id: UUID,
    expand: str | None = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return navigation.get_user_story_hierarchy(db, story_id, expand)


@router.get("/hierarchy/path/{entity_type}/{entity_id}", response_model=list[schemas.PathElement])
async def get_entity_path(
    entity_type: str,
    entity_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return navigation.get_entity_path(db, entity_type, entity_id)


@router.get("/references/{reference_id}", response_model=schemas.ResolvedReference)
async def resolve_reference_id(
    reference_id: str,
    entity_type: str | None = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return navigation.resolve_reference_id(db, reference_id, entity_type)
