from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from uuid import UUID

from ..database import get_db
from ..auth import get_current_user
from .. import models, schemas
from ..services import steering_documents
from ..services.common import resolve_identifier

router = APIRouter(prefix="/api/steering-documents", tags=["steering-documents"])


def _load(db: Session, identifier: str) -> models.SteeringDocument:
    return resolve_identifier(
        db, models.ENTITY_STEERING_DOCUMENT, identifier, "steering document"
    )


@router.post("", response_model=schemas.SteeringDocumentOut, status_code=201)
async def create_steering_document(
    payload: schemas.SteeringDocumentCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return steering_documents.create_steering_document(db, user, payload)


@router.get("", response_model=schemas.Page[schemas.SteeringDocumentOut])
async def list_steering_documents(
    creator_id: UUID | None = None,
    order_by: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    rows, total, limit, offset = steering_documents.list_steering_documents(
        db, creator_id=creator_id, order_by=order_by, limit=limit, offset=offset
    )
    return schemas.page_of(schemas.SteeringDocumentOut, rows, total, limit, offset)


@router.get("/epics/{epic_id}", response_model=list[schemas.SteeringDocumentOut])
async def list_for_epic(
    epic_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return steering_documents.list_for_epic(db, epic_id)


@router.get("/{identifier}", response_model=schemas.SteeringDocumentOut)
async def get_steering_document(
    identifier: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return _load(db, identifier)


@router.put("/{identifier}", response_model=schemas.SteeringDocumentOut)
async def update_steering_document(
    identifier: str,
    payload: schemas.SteeringDocumentUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return steering_documents.update_steering_document(db, user, _load(db, identifier).id, payload)


@router.delete("/{identifier}", status_code=204)
async def delete_steering_document(
    identifier: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    steering_documents.delete_steering_document(db, user, _load(db, identifier).id)


@router.post("/{identifier}/epics/{epic_id}", status_code=204)
async def link_to_epic(
    identifier: str,
    epic_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    steering_documents.link_to_epic(db, user, _load(db, identifier).id, epic_id)


@router.delete("/{identifier}/epics/{epic_id}", status_code=204)
async def unlink_from_epic(
    identifier: str,
    epic_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    steering_documents.unlink_from_epic(db, user, _load(db, identifier).id, epic_id)
