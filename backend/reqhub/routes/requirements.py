from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from uuid import UUID

from ..database import get_db
from ..auth import get_current_user, require_editor
from .. import models, schemas
from ..services import deletion, requirements
from ..services.common import resolve_identifier

router = APIRouter(prefix="/api/requirements", tags=["requirements"])


def _load(db: Session, identifier: str) -> models.Requirement:
    return resolve_identifier(db, models.ENTITY_REQUIREMENT, identifier, "requirement")


@router.post("/relationships", response_model=schemas.RelationshipOut, status_code=201)
async def create_relationship(
    payload: schemas.RelationshipCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_editor(user)
    return requirements.create_relationship(db, user.id, payload)


@router.delete("/relationships/{relationship_id}", status_code=204)
async def delete_relationship(
    relationship_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_editor(user)
    requirements.delete_relationship(db, relationship_id)


@router.post("", response_model=schemas.RequirementOut, status_code=201)
async def create_requirement(
    payload: schemas.RequirementCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_editor(user)
    return requirements.create_requirement(db, user.id, payload)


@router.get("", response_model=schemas.Page[schemas.RequirementOut])
async def list_requirements(
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
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    rows, total, limit, offset = requirements.list_requirements(
        db,
        user_story_id=user_story_id,
        acceptance_criteria_id=acceptance_criteria_id,
        type_id=type_id,
        creator_id=creator_id,
        assignee_id=assignee_id,
        status=status,
        priority=priority,
        order_by=order_by,
        limit=limit,
        offset=offset,
    )
    return schemas.page_of(schemas.RequirementOut, rows, total, limit, offset)


@router.get("/{identifier}", response_model=schemas.RequirementOut)
async def get_requirement(
    identifier: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return _load(db, identifier)


@router.put("/{identifier}", response_model=schemas.RequirementOut)
async def update_requirement(
    identifier: str,
    payload: schemas.RequirementUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_editor(user)
    return requirements.update_requirement(db, _load(db, identifier).id, payload)


@router.patch("/{identifier}/status", response_model=schemas.RequirementOut)
async def change_status(
    identifier: str,
    payload: schemas.StatusChange,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_editor(user)
    return requirements.change_status(db, _load(db, identifier).id, payload.status)


@router.patch("/{identifier}/assign", response_model=schemas.RequirementOut)
async def assign_requirement(
    identifier: str,
    payload: schemas.AssigneeChange,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_editor(user)
    return requirements.assign_requirement(db, _load(db, identifier).id, payload.assignee_id)


@router.get("/{identifier}/relationships", response_model=list[schemas.RelationshipOut])
async def list_relationships(
    identifier: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return requirements.list_relationships(db, _load(db, identifier).id)


@router.get("/{identifier}/validate-deletion", response_model=schemas.DependencyInfo)
async def validate_deletion(
    identifier: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return deletion.validate_delete(db, models.ENTITY_REQUIREMENT, _load(db, identifier).id)


@router.delete("/{identifier}", response_model=schemas.DeletionResult)
async def delete_requirement(
    identifier: str,
    force: bool = False,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_editor(user)
    return requirements.delete_requirement(db, _load(db, identifier).id, user.id, force)
