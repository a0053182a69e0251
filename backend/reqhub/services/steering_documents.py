from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from .. import models, schemas
from ..database import transaction
from ..errors import NotFound, Unauthorized, ValidationError
from ..reference_ids import get_by_reference_id, next_reference_id
from .common import get_or_404, paginate

# purpose: steering documents (STD-nnn) and their many-to-many links to epics
# status: active
# depends_on: reqhub.models.epic_steering_documents

logger = logging.getLogger(__name__)


def _check_editor(user: models.User) -> None:
    if not user.can_edit:
        raise Unauthorized("insufficient permissions to modify steering documents")


def _check_owner(user: models.User, document: models.SteeringDocument) -> None:
    _check_editor(user)
    if not user.is_administrator and document.creator_id != user.id:
        raise Unauthorized("only the creator or an administrator can modify this steering document")


def create_steering_document(
    db: Session, user: models.User, payload: schemas.SteeringDocumentCreate
) -> models.SteeringDocument:
    _check_editor(user)
    with transaction(db):
        document = models.SteeringDocument(
            reference_id=next_reference_id(db, models.ENTITY_STEERING_DOCUMENT),
            title=payload.title,
            description=payload.description,
            creator_id=user.id,
        )
        db.add(document)
        db.flush()
    logger.info(
        "created steering document",
        extra={"document_id": str(document.id), "reference_id": document.reference_id},
    )
    return document


def get_steering_document(db: Session, document_id: UUID) -> models.SteeringDocument:
    return get_or_404(db, models.SteeringDocument, document_id, "steering document")


def get_steering_document_by_reference(db: Session, reference_id: str) -> models.SteeringDocument:
    document = get_by_reference_id(db, models.ENTITY_STEERING_DOCUMENT, reference_id)
    if document is None:
        raise NotFound("steering document not found")
    return document


def list_steering_documents(
    db: Session,
    *,
    creator_id: UUID | None = None,
    order_by: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
):
    return paginate(
        db.query(models.SteeringDocument),
        models.SteeringDocument,
        {"creator_id": creator_id},
        order_by,
        limit,
        offset,
    )


def update_steering_document(
    db: Session,
    user: models.User,
    document_id: UUID,
    payload: schemas.SteeringDocumentUpdate,
) -> models.SteeringDocument:
    data = payload.model_dump(exclude_unset=True)
    with transaction(db):
        document = get_steering_document(db, document_id)
        _check_owner(user, document)
        if data.get("title") is not None:
            document.title = data["title"]
        if "description" in data:
            document.description = data["description"]
        db.flush()
    return document


def delete_steering_document(db: Session, user: models.User, document_id: UUID) -> None:
    with transaction(db):
        document = get_steering_document(db, document_id)
        _check_owner(user, document)
        document.epics.clear()
        db.flush()
        db.delete(document)
        db.flush()
    logger.info("deleted steering document", extra={"document_id": str(document_id)})


def list_for_epic(db: Session, epic_id: UUID) -> list[models.SteeringDocument]:
    epic = get_or_404(db, models.Epic, epic_id, "epic")
    return sorted(epic.steering_documents, key=lambda d: d.reference_id)


def link_to_epic(db: Session, user: models.User, document_id: UUID, epic_id: UUID) -> None:
    with transaction(db):
        document = get_steering_document(db, document_id)
        epic = get_or_404(db, models.Epic, epic_id, "epic")
        _check_owner(user, document)
        if epic in document.epics:
            raise ValidationError("steering document is already linked to this epic")
        document.epics.append(epic)
        db.flush()


def unlink_from_epic(db: Session, user: models.User, document_id: UUID, epic_id: UUID) -> None:
    with transaction(db):
        document = get_steering_document(db, document_id)
        epic = get_or_404(db, models.Epic, epic_id, "epic")
        _check_owner(user, document)
        if epic not in document.epics:
            raise NotFound("steering document is not linked to this epic")
        document.epics.remove(epic)
        db.flush()
