from __future__ import annotations

import logging
from collections import defaultdict
from uuid import UUID

from sqlalchemy.orm import Session

from .. import models, schemas
from ..database import transaction
from ..errors import NotFound, ValidationError, InvariantViolation
from .common import get_or_404

# purpose: threaded and inline comments; inline anchors are hidden once their text changes
# status: active
# depends_on: reqhub.models (Comment plus the four commentable entities)

logger = logging.getLogger(__name__)

HIDDEN_MARKER = "[HIDDEN: Linked text was modified or deleted] "

_ENTITY_MODELS = {
    models.ENTITY_EPIC: models.Epic,
    models.ENTITY_USER_STORY: models.UserStory,
    models.ENTITY_ACCEPTANCE_CRITERIA: models.AcceptanceCriteria,
    models.ENTITY_REQUIREMENT: models.Requirement,
}


def _check_entity_type(entity_type: str) -> None:
    if entity_type not in _ENTITY_MODELS:
        raise ValidationError(f"invalid entity type: {entity_type}")


def _load_entity(db: Session, entity_type: str, entity_id: UUID):
    _check_entity_type(entity_type)
    entity = db.get(_ENTITY_MODELS[entity_type], entity_id)
    if entity is None:
        raise NotFound(f"{entity_type.replace('_', ' ')} not found")
    return entity


def _validate_anchor(
    description: str | None,
    linked_text: str | None,
    start: int | None,
    end: int | None,
) -> bool:
    """Return True for an inline anchor, False for none; raise on a partial or stale one."""

    present = [value is not None for value in (linked_text, start, end)]
    if not any(present):
        return False
    if not all(present):
        raise ValidationError(
            "inline comments require linked_text, text_position_start, and text_position_end"
        )
    if not linked_text:
        raise ValidationError("linked_text cannot be empty")
    if start < 0:
        raise ValidationError("text_position_start must be non-negative")
    if end < start:
        raise ValidationError("text_position_end must be greater than or equal to text_position_start")
    text = description or ""
    if end > len(text):
        raise ValidationError("text position is outside the entity description")
    if text[start:end] != linked_text:
        raise ValidationError("linked_text does not match the entity description at the given position")
    return True


def create_comment(
    db: Session,
    entity_type: str,
    entity_id: UUID,
    author_id: UUID,
    payload: schemas.CommentCreate,
) -> models.Comment:
    content = payload.content.strip()
    if not content:
        raise ValidationError("comment content cannot be empty")
    with transaction(db):
        entity = _load_entity(db, entity_type, entity_id)
        get_or_404(db, models.User, author_id, "author")
        if payload.parent_comment_id is not None:
            parent = db.get(models.Comment, payload.parent_comment_id)
            if parent is None:
                raise NotFound("parent comment not found")
            if parent.entity_type != entity_type or parent.entity_id != entity_id:
                raise InvariantViolation("parent comment belongs to a different entity")
        _validate_anchor(
            entity.description,
            payload.linked_text,
            payload.text_position_start,
            payload.text_position_end,
        )
        comment = models.Comment(
            entity_type=entity_type,
            entity_id=entity_id,
            parent_comment_id=payload.parent_comment_id,
            author_id=author_id,
            content=content,
            linked_text=payload.linked_text,
            text_position_start=payload.text_position_start,
            text_position_end=payload.text_position_end,
        )
        db.add(comment)
        db.flush()
    return comment


def get_comment(db: Session, comment_id: UUID) -> models.Comment:
    return get_or_404(db, models.Comment, comment_id, "comment")


def update_comment(db: Session, comment_id: UUID, payload: schemas.CommentUpdate) -> models.Comment:
    content = payload.content.strip()
    if not content:
        raise ValidationError("comment content cannot be empty")
    with transaction(db):
        comment = get_comment(db, comment_id)
        comment.content = content
        db.flush()
    return comment


def delete_comment(db: Session, comment_id: UUID) -> None:
    with transaction(db):
        comment = get_comment(db, comment_id)
        has_replies = (
            db.query(models.Comment)
            .filter(models.Comment.parent_comment_id == comment.id)
            .first()
        )
        if has_replies:
            raise ValidationError("cannot delete comment with replies")
        db.delete(comment)
        db.flush()


def list_by_entity(db: Session, entity_type: str, entity_id: UUID) -> list[models.Comment]:
    _check_entity_type(entity_type)
    return (
        db.query(models.Comment)
        .filter(
            models.Comment.entity_type == entity_type,
            models.Comment.entity_id == entity_id,
        )
        .order_by(models.Comment.created_at, models.Comment.id)
        .all()
    )


def list_by_status(db: Session, is_resolved: bool) -> list[models.Comment]:
    return (
        db.query(models.Comment)
        .filter(models.Comment.is_resolved.is_(is_resolved))
        .order_by(models.Comment.created_at.desc())
        .all()
    )


def to_out(comment: models.Comment, replies: list[schemas.CommentOut] | None = None) -> schemas.CommentOut:
    out = schemas.CommentOut.model_validate(comment)
    out.replies = replies or []
    return out


def get_threaded(db: Session, entity_type: str, entity_id: UUID) -> list[schemas.CommentOut]:
    """Group every comment of an entity under its root in one pass."""

    comments = list_by_entity(db, entity_type, entity_id)
    children: dict[UUID, list[models.Comment]] = defaultdict(list)
    for comment in comments:
        if comment.parent_comment_id is not None:
            children[comment.parent_comment_id].append(comment)

    def build(comment: models.Comment) -> schemas.CommentOut:
        return to_out(comment, [build(child) for child in children.get(comment.id, [])])

    known = {comment.id for comment in comments}
    return [
        build(comment)
        for comment in comments
        if comment.parent_comment_id is None or comment.parent_comment_id not in known
    ]


def get_inline(db: Session, entity_type: str, entity_id: UUID) -> list[models.Comment]:
    return [c for c in list_by_entity(db, entity_type, entity_id) if c.is_inline]


def _set_resolved(db: Session, comment_id: UUID, value: bool) -> models.Comment:
    with transaction(db):
        comment = get_comment(db, comment_id)
        comment.is_resolved = value
        db.flush()
    return comment


def resolve_comment(db: Session, comment_id: UUID) -> models.Comment:
    return _set_resolved(db, comment_id, True)


def unresolve_comment(db: Session, comment_id: UUID) -> models.Comment:
    return _set_resolved(db, comment_id, False)


def on_description_changed(
    db: Session, entity_type: str, entity_id: UUID, new_text: str | None
) -> list[models.Comment]:
    """Hide inline comments whose anchor no longer matches ``new_text``.

    Returns the comments that were hidden. Runs inside the caller's transaction.
    """

    text = new_text or ""
    hidden = []
    with transaction(db):
        for comment in get_inline(db, entity_type, entity_id):
            start, end = comment.text_position_start, comment.text_position_end
            still_valid = (
                0 <= start <= end <= len(text) and text[start:end] == comment.linked_text
            )
            if still_valid:
                continue
            comment.linked_text = None
            comment.text_position_start = None
            comment.text_position_end = None
            comment.content = HIDDEN_MARKER + comment.content
            hidden.append(comment)
        db.flush()
    if hidden:
        logger.info(
            "hid inline comments after description change",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "hidden_count": len(hidden),
            },
        )
    return hidden


def delete_for_entity(db: Session, entity_type: str, entity_id: UUID) -> int:
    """Remove every comment attached to an entity, replies first."""

    with transaction(db):
        comments = list_by_entity(db, entity_type, entity_id)
        by_id = {c.id: c for c in comments}

        def level(comment: models.Comment) -> int:
            depth = 0
            while comment.parent_comment_id in by_id and depth < len(by_id):
                comment = by_id[comment.parent_comment_id]
                depth += 1
            return depth

        for comment in sorted(comments, key=level, reverse=True):
            db.delete(comment)
            db.flush()
    return len(comments)
