from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Query, Session

from .. import models
from ..errors import NotFound, ValidationError
from ..reference_ids import MODEL_BY_ENTITY, get_by_reference_id

# purpose: small helpers shared by entity services (lookups, priority, paging, ordering)
# status: active

DEFAULT_LIMIT = 50
MAX_LIMIT = 100
DEFAULT_ORDER = "created_at DESC"
ORDERABLE_COLUMNS = ("created_at", "updated_at", "priority", "title", "status", "reference_id")


def get_or_404(db: Session, model, entity_id: UUID, label: str):
    obj = db.get(model, entity_id)
    if obj is None:
        raise NotFound(f"{label} not found")
    return obj


def require_user(db: Session, user_id: UUID | None) -> models.User:
    if user_id is None:
        raise NotFound("user not found")
    return get_or_404(db, models.User, user_id, "user")


def validate_priority(priority: int) -> int:
    if priority not in models.PRIORITY_LABELS:
        raise ValidationError("invalid priority: must be between 1 (Critical) and 4 (Low)")
    return priority


def normalize_paging(limit: int | None, offset: int | None) -> tuple[int, int]:
    if not limit or limit <= 0:
        limit = DEFAULT_LIMIT
    if limit > MAX_LIMIT:
        limit = MAX_LIMIT
    offset = offset or 0
    if offset < 0:
        raise ValidationError("offset must be non-negative")
    return limit, offset


def apply_order(query: Query, model, order_by: str | None) -> Query:
    """Apply an ``"<column> [ASC|DESC]"`` ordering, defaulting to newest first."""

    parts = (order_by or DEFAULT_ORDER).split()
    column = parts[0]
    direction = parts[1].lower() if len(parts) > 1 else "asc"
    if column not in ORDERABLE_COLUMNS or direction not in ("asc", "desc"):
        raise ValidationError(f"invalid order_by: {order_by}")
    attr = getattr(model, column, None)
    if attr is None:
        raise ValidationError(f"invalid order_by: {order_by}")
    ordered = attr.desc() if direction == "desc" else attr.asc()
    return query.order_by(ordered, model.id)


def apply_filters(query: Query, model, filters: dict) -> Query:
    for key, value in filters.items():
        if value is not None:
            query = query.filter(getattr(model, key) == value)
    return query


def paginate(query: Query, model, filters: dict, order_by: str | None, limit: int | None, offset: int | None):
    limit, offset = normalize_paging(limit, offset)
    query = apply_filters(query, model, filters)
    total = query.count()
    rows = apply_order(query, model, order_by).offset(offset).limit(limit).all()
    return rows, total, limit, offset


def resolve_identifier(db: Session, entity_type: str, identifier: str, label: str):
    """Load an entity by UUID or, failing that, by its reference id."""

    try:
        entity_id = UUID(identifier)
    except ValueError:
        obj = get_by_reference_id(db, entity_type, identifier)
        if obj is None:
            raise NotFound(f"{label} not found")
        return obj
    return get_or_404(db, MODEL_BY_ENTITY[entity_type], entity_id, label)
