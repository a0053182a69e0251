from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from .. import models, schemas
from ..database import transaction
from ..errors import InvalidStatusTransition, NotFound, ValidationError
from .common import get_or_404

# purpose: per-entity-type workflow models; open models allow any move, closed ones only listed edges
# status: active
# depends_on: reqhub.models (StatusModel, Status, StatusTransition)

logger = logging.getLogger(__name__)

BUILTIN_STATUSES: dict[str, tuple[str, ...]] = {
    models.ENTITY_EPIC: ("Backlog", "Draft", "In Progress", "Done", "Cancelled"),
    models.ENTITY_USER_STORY: ("Backlog", "Draft", "In Progress", "Done", "Cancelled"),
    models.ENTITY_REQUIREMENT: ("Draft", "Active", "Obsolete"),
}
INITIAL_STATUS = {
    models.ENTITY_EPIC: "Backlog",
    models.ENTITY_USER_STORY: "Backlog",
    models.ENTITY_REQUIREMENT: "Draft",
}
FINAL_STATUSES = {"Done", "Cancelled", "Obsolete"}


def _check_entity_type(entity_type: str) -> None:
    if entity_type not in models.STATUS_ENTITIES:
        raise ValidationError(f"invalid entity type: {entity_type}")


def get_default_model(db: Session, entity_type: str) -> models.StatusModel | None:
    return (
        db.query(models.StatusModel)
        .filter(
            models.StatusModel.entity_type == entity_type,
            models.StatusModel.is_default.is_(True),
        )
        .first()
    )


def _clear_default(db: Session, entity_type: str, keep_id: UUID | None = None) -> None:
    query = db.query(models.StatusModel).filter(
        models.StatusModel.entity_type == entity_type,
        models.StatusModel.is_default.is_(True),
    )
    for model in query.all():
        if model.id != keep_id:
            model.is_default = False


def create_status_model(db: Session, payload: schemas.StatusModelCreate) -> models.StatusModel:
    _check_entity_type(payload.entity_type)
    with transaction(db):
        exists = (
            db.query(models.StatusModel)
            .filter_by(entity_type=payload.entity_type, name=payload.name)
            .first()
        )
        if exists:
            raise ValidationError("status model with this name already exists for entity type")
        if payload.is_default:
            _clear_default(db, payload.entity_type)
        status_model = models.StatusModel(**payload.model_dump())
        db.add(status_model)
        db.flush()
    return status_model


def get_status_model(db: Session, model_id: UUID) -> models.StatusModel:
    return get_or_404(db, models.StatusModel, model_id, "status model")


def list_status_models(db: Session, entity_type: str | None = None) -> list[models.StatusModel]:
    query = db.query(models.StatusModel)
    if entity_type:
        _check_entity_type(entity_type)
        query = query.filter(models.StatusModel.entity_type == entity_type)
    return query.order_by(models.StatusModel.entity_type, models.StatusModel.name).all()


def get_default_model_or_404(db: Session, entity_type: str) -> models.StatusModel:
    _check_entity_type(entity_type)
    status_model = get_default_model(db, entity_type)
    if status_model is None:
        raise NotFound("status model not found")
    return status_model


def update_status_model(
    db: Session, model_id: UUID, payload: schemas.StatusModelUpdate
) -> models.StatusModel:
    with transaction(db):
        status_model = get_status_model(db, model_id)
        data = payload.model_dump(exclude_unset=True)
        name = data.get("name")
        if name and name != status_model.name:
            clash = (
                db.query(models.StatusModel)
                .filter_by(entity_type=status_model.entity_type, name=name)
                .first()
            )
            if clash:
                raise ValidationError("status model with this name already exists for entity type")
        if data.get("is_default"):
            _clear_default(db, status_model.entity_type, keep_id=status_model.id)
        for key, value in data.items():
            if value is not None or key == "description":
                setattr(status_model, key, value)
        db.flush()
    return status_model


def delete_status_model(db: Session, model_id: UUID) -> None:
    with transaction(db):
        status_model = get_status_model(db, model_id)
        db.delete(status_model)
        db.flush()
    logger.info("deleted status model", extra={"status_model_id": str(model_id)})


def create_status(db: Session, model_id: UUID, payload: schemas.StatusCreate) -> models.Status:
    with transaction(db):
        status_model = get_status_model(db, model_id)
        if any(s.name == payload.name for s in status_model.statuses):
            raise ValidationError("status with this name already exists in status model")
        if payload.is_initial:
            for other in status_model.statuses:
                other.is_initial = False
        status = models.Status(status_model_id=status_model.id, **payload.model_dump())
        db.add(status)
        db.flush()
        db.refresh(status_model)
    return status


def get_status(db: Session, status_id: UUID) -> models.Status:
    return get_or_404(db, models.Status, status_id, "status")


def update_status(db: Session, status_id: UUID, payload: schemas.StatusUpdate) -> models.Status:
    with transaction(db):
        status = get_status(db, status_id)
        data = payload.model_dump(exclude_unset=True)
        siblings = [s for s in status.status_model.statuses if s.id != status.id]
        name = data.get("name")
        if name and any(s.name == name for s in siblings):
            raise ValidationError("status with this name already exists in status model")
        if data.get("is_initial"):
            for other in siblings:
                other.is_initial = False
        for key, value in data.items():
            if value is not None or key in ("description", "color"):
                setattr(status, key, value)
        db.flush()
    return status


def delete_status(db: Session, status_id: UUID) -> None:
    with transaction(db):
        status = get_status(db, status_id)
        db.query(models.StatusTransition).filter(
            (models.StatusTransition.from_status_id == status.id)
            | (models.StatusTransition.to_status_id == status.id)
        ).delete(synchronize_session="fetch")
        db.delete(status)
        db.flush()


def create_transition(
    db: Session, model_id: UUID, payload: schemas.TransitionCreate
) -> models.StatusTransition:
    with transaction(db):
        status_model = get_status_model(db, model_id)
        from_status = db.get(models.Status, payload.from_status_id)
        to_status = db.get(models.Status, payload.to_status_id)
        if from_status is None or to_status is None:
            raise NotFound("status not found")
        if from_status.status_model_id != model_id or to_status.status_model_id != model_id:
            raise ValidationError("statuses must belong to the same status model")
        duplicate = (
            db.query(models.StatusTransition)
            .filter_by(
                status_model_id=model_id,
                from_status_id=from_status.id,
                to_status_id=to_status.id,
            )
            .first()
        )
        if duplicate:
            raise ValidationError("status transition already exists")
        transition = models.StatusTransition(
            status_model_id=status_model.id,
            from_status_id=from_status.id,
            to_status_id=to_status.id,
            name=payload.name,
            description=payload.description,
        )
        db.add(transition)
        db.flush()
        db.refresh(status_model)
    return transition


def delete_transition(db: Session, transition_id: UUID) -> None:
    with transaction(db):
        transition = get_or_404(db, models.StatusTransition, transition_id, "status transition")
        db.delete(transition)
        db.flush()


def _status_by_name(status_model: models.StatusModel, name: str) -> models.Status | None:
    for status in status_model.statuses:
        if status.name == name:
            return status
    return None


def validate_transition(db: Session, entity_type: str, from_status: str, to_status: str) -> None:
    """Raise InvalidStatusTransition unless ``from_status -> to_status`` is allowed.

    Without a default model for ``entity_type`` every move is allowed. With one,
    both names must be statuses of that model; a model without transitions is
    open, otherwise the exact edge must be listed.
    """

    status_model = get_default_model(db, entity_type)
    if status_model is None:
        return
    source = _status_by_name(status_model, from_status)
    target = _status_by_name(status_model, to_status)
    if source is None or target is None:
        raise InvalidStatusTransition(
            f"invalid status transition from {from_status!r} to {to_status!r}"
        )
    if not status_model.transitions:
        return
    for transition in status_model.transitions:
        if transition.from_status_id == source.id and transition.to_status_id == target.id:
            return
    raise InvalidStatusTransition(
        f"invalid status transition from {from_status!r} to {to_status!r}"
    )


def ensure_status_change(db: Session, entity_type: str, current: str, new: str) -> None:
    """Gate an entity status update through the active workflow."""

    if current == new:
        return
    if get_default_model(db, entity_type) is None:
        if new not in BUILTIN_STATUSES[entity_type]:
            raise ValidationError(f"invalid {entity_type} status: {new}")
        return
    validate_transition(db, entity_type, current, new)


def initial_status(db: Session, entity_type: str) -> str:
    status_model = get_default_model(db, entity_type)
    if status_model is not None:
        for status in status_model.statuses:
            if status.is_initial:
                return status.name
    return INITIAL_STATUS[entity_type]


def get_available_transitions(db: Session, entity_type: str, from_status: str) -> list[models.Status]:
    _check_entity_type(entity_type)
    status_model = get_default_model(db, entity_type)
    if status_model is None:
        return []
    if not status_model.transitions:
        return [s for s in status_model.statuses if s.name != from_status]
    source = _status_by_name(status_model, from_status)
    if source is None:
        return []
    targets = {t.to_status_id for t in status_model.transitions if t.from_status_id == source.id}
    return [s for s in status_model.statuses if s.id in targets]


def install_default_model(db: Session, entity_type: str) -> models.StatusModel:
    """Create the default open workflow for ``entity_type`` unless one exists."""

    with transaction(db):
        existing = get_default_model(db, entity_type)
        if existing is not None:
            return existing
        label = entity_type.replace("_", " ").title()
        status_model = models.StatusModel(
            entity_type=entity_type,
            name=f"Default {label} Workflow",
            description=f"Default status workflow for {label.lower()}s",
            is_default=True,
        )
        db.add(status_model)
        db.flush()
        for order, name in enumerate(BUILTIN_STATUSES[entity_type], start=1):
            db.add(
                models.Status(
                    status_model_id=status_model.id,
                    name=name,
                    order=order,
                    is_initial=name == INITIAL_STATUS[entity_type],
                    is_final=name in FINAL_STATUSES,
                )
            )
        db.flush()
        db.refresh(status_model)
    return status_model
