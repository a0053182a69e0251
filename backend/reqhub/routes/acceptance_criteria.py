from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from uuid import UUID

from ..database import get_db
from ..auth import get_current_user, require_editor
from .. import models, schemas
from ..services import acceptance_criteria, deletion, requirements
from ..services.common import resolve_identifier

router = APIRouter(prefix="/api/acceptance-criteria", tags=["acceptance-criteria"])


def _load(db: Session, identifier: str) -> models.AcceptanceCriteria:
    return resolve_identifier(
        db, models.ENTITY_ACCEPTANCE_CRITERIA, identifier, "acceptance criteria"
    )


@router.post("", response_model=schemas.AcceptanceCriteriaOut, status_code=201)
async def create_acceptance_criteria(
    payload: schemas.AcceptanceCriteriaCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_editor(user)
    return acceptance_criteria.create_acceptance_criteria(db, user.id, payload)


@router.get("", response_model=schemas.Page[schemas.AcceptanceCriteriaOut])
async def list_acceptance_criteria(
    user_story_id: UUID | None = None,
    author_id: UUID | None = None,
    order_by: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    rows, total, limit, offset = acceptance_criteria.list_acceptance_criteria(
        db,
        user_story_id=user_story_id,
        author_id=author_id,
        order_by=order_by,
        limit=limit,
        offset=offset,
    )
    return schemas.page_of(schemas.AcceptanceCriteriaOut, rows, total, limit, offset)


@router.get("/{identifier}", response_model=schemas.AcceptanceCriteriaOut)
async def get_acceptance_criteria(
    identifier: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return _load(db, identifier)


@router.put("/{identifier}", response_model=schemas.AcceptanceCriteriaOut)
async def update_acceptance_criteria(
    identifier: str,
    payload: schemas.AcceptanceCriteriaUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_editor(user)
    return acceptance_criteria.update_acceptance_criteria(db, _load(db, identifier).id, payload)


@router.get("/{identifier}/requirements", response_model=list[schemas.RequirementOut])
async def list_linked_requirements(
    identifier: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return requirements.list_by_acceptance_criteria(db, _load(db, identifier).id)


@router.get("/{identifier}/validate-deletion", response_model=schemas.DependencyInfo)
async def validate_deletion(
    identifier: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return deletion.validate_delete(
        db, models.ENTITY_ACCEPTANCE_CRITERIA, _load(db, identifier).id
    )


@router.delete("/{identifier}", response_model=schemas.DeletionResult)
async def delete_acceptance_criteria(
    identifier: str,
    force: bool = False,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_editor(user)
    return acceptance_criteria.delete_acceptance_criteria(
        db, _load(db, identifier).id, user.id, force
    )
