from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from .. import models, schemas, security
from ..database import transaction
from ..errors import HasDependencies, ValidationError
from .common import get_or_404, normalize_paging

# purpose: user accounts and roles; deletion is refused while the user still owns content
# status: active

logger = logging.getLogger(__name__)

_OWNED = (
    (models.Epic, models.Epic.creator_id, "epics"),
    (models.UserStory, models.UserStory.creator_id, "user stories"),
    (models.AcceptanceCriteria, models.AcceptanceCriteria.author_id, "acceptance criteria"),
    (models.Requirement, models.Requirement.creator_id, "requirements"),
    (models.Comment, models.Comment.author_id, "comments"),
    (models.SteeringDocument, models.SteeringDocument.creator_id, "steering documents"),
    (models.AuditLog, models.AuditLog.user_id, "audit entries"),
)


def create_user(db: Session, payload: schemas.UserCreate) -> models.User:
    with transaction(db):
        clash = (
            db.query(models.User)
            .filter(or_(models.User.username == payload.username, models.User.email == payload.email))
            .first()
        )
        if clash:
            raise ValidationError("username or email already registered")
        user = models.User(username=payload.username, email=payload.email, role=payload.role)
        if payload.password is not None:
            user.password_hash = security.get_password_hash(payload.password)
        db.add(user)
        db.flush()
    logger.info("created user", extra={"user_id": str(user.id), "role": user.role})
    return user


def get_user(db: Session, user_id: UUID) -> models.User:
    return get_or_404(db, models.User, user_id, "user")


def get_by_username(db: Session, username: str) -> models.User | None:
    return db.query(models.User).filter(models.User.username == username).first()


def list_users(
    db: Session, role: str | None = None, limit: int | None = None, offset: int | None = None
) -> tuple[list[models.User], int]:
    limit, offset = normalize_paging(limit, offset)
    query = db.query(models.User)
    if role:
        query = query.filter(models.User.role == role)
    total = query.count()
    rows = query.order_by(models.User.username).offset(offset).limit(limit).all()
    return rows, total


def update_user(db: Session, user_id: UUID, payload: schemas.UserUpdate) -> models.User:
    with transaction(db):
        user = get_user(db, user_id)
        if payload.email is not None and payload.email != user.email:
            taken = db.query(models.User).filter(models.User.email == payload.email).first()
            if taken:
                raise ValidationError("email already registered")
            user.email = payload.email
        if payload.role is not None:
            user.role = payload.role
        db.flush()
    return user


def owned_content(db: Session, user_id: UUID) -> dict[str, int]:
    counts = {}
    for model, column, label in _OWNED:
        count = db.query(model).filter(column == user_id).count()
        if count:
            counts[label] = count
    return counts


def delete_user(db: Session, user_id: UUID) -> None:
    with transaction(db):
        user = get_user(db, user_id)
        owned = owned_content(db, user_id)
        if owned:
            summary = ", ".join(f"{count} {label}" for label, count in owned.items())
            raise HasDependencies(f"user still owns content: {summary}")
        db.query(models.PersonalAccessToken).filter(
            models.PersonalAccessToken.user_id == user_id
        ).delete(synchronize_session=False)
        db.query(models.RefreshToken).filter(models.RefreshToken.user_id == user_id).delete(
            synchronize_session=False
        )
        db.delete(user)
        db.flush()
    logger.info("deleted user", extra={"user_id": str(user_id)})
