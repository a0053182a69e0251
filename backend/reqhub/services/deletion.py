"""Cascading deletes across epics, user stories, acceptance criteria and requirements.

Every delete runs in one transaction. ``validate_delete`` walks the subtree that a
forced delete would touch without changing anything; ``delete`` performs the
same walk depth-first (acceptance criteria before requirements, relationships
before their requirement), removes the comments of each deleted entity and
writes one audit row per deleted entity. All rows written by a single delete
share a ``del_<unix>_<8 hex>`` transaction id.
"""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.orm import Session

from .. import audit, models, schemas, search
from ..database import transaction
from ..errors import (
    DomainError,
    HasDependencies,
    InvariantViolation,
    NotFound,
    TransactionFailed,
    ValidationError,
)
from . import comments

# purpose: dependency preview and transactional cascade deletion with audit trail
# status: active
# depends_on: reqhub.services.comments, reqhub.audit

logger = logging.getLogger(__name__)

REL_ENTITY = "requirement_relationship"
UNLINK_ENTITY = "requirement_unlink"
LAST_AC_REASON = "User story must have at least one acceptance criteria"

_MODELS = {
    models.ENTITY_EPIC: models.Epic,
    models.ENTITY_USER_STORY: models.UserStory,
    models.ENTITY_ACCEPTANCE_CRITERIA: models.AcceptanceCriteria,
    models.ENTITY_REQUIREMENT: models.Requirement,
}


def new_transaction_id() -> str:
    return f"del_{int(time.time())}_{secrets.token_hex(4)}"


def _label(entity_type: str) -> str:
    return entity_type.replace("_", " ")


def _load(db: Session, entity_type: str, entity_id: UUID):
    model = _MODELS.get(entity_type)
    if model is None:
        raise ValidationError(f"unsupported entity type: {entity_type}")
    obj = db.get(model, entity_id)
    if obj is None:
        raise NotFound(f"{_label(entity_type)} not found")
    return obj


def _children(db: Session, model, column, parent_id: UUID) -> list:
    return db.query(model).filter(column == parent_id).order_by(model.created_at, model.id).all()


def _stories(db: Session, epic_id: UUID) -> list[models.UserStory]:
    return _children(db, models.UserStory, models.UserStory.epic_id, epic_id)


def _criteria(db: Session, story_id: UUID) -> list[models.AcceptanceCriteria]:
    return _children(db, models.AcceptanceCriteria, models.AcceptanceCriteria.user_story_id, story_id)


def _requirements(db: Session, story_id: UUID) -> list[models.Requirement]:
    return _children(db, models.Requirement, models.Requirement.user_story_id, story_id)


def _relationships(db: Session, requirement_id: UUID) -> list[models.RequirementRelationship]:
    rel = models.RequirementRelationship
    return (
        db.query(rel)
        .filter((rel.source_requirement_id == requirement_id) | (rel.target_requirement_id == requirement_id))
        .order_by(rel.created_at, rel.id)
        .all()
    )


def _preview(entity_type: str, obj, title: str | None = None) -> schemas.CascadeDeletePreview:
    return schemas.CascadeDeletePreview(
        entity_type=entity_type,
        entity_id=obj.id,
        reference_id=obj.reference_id,
        title=title if title is not None else obj.title,
    )


def _relationship_previews(
    db: Session, requirement: models.Requirement, seen: set[UUID]
) -> list[schemas.CascadeDeletePreview]:
    previews = []
    for rel in _relationships(db, requirement.id):
        if rel.id in seen:
            continue
        seen.add(rel.id)
        other_id = (
            rel.target_requirement_id
            if rel.source_requirement_id == requirement.id
            else rel.source_requirement_id
        )
        other = db.get(models.Requirement, other_id)
        other_ref = other.reference_id if other is not None else str(other_id)
        previews.append(_preview(REL_ENTITY, rel, title=f"Relationship with {other_ref}"))
    return previews


def _story_subtree(
    db: Session, story: models.UserStory, seen: set[UUID]
) -> list[schemas.CascadeDeletePreview]:
    previews = [
        _preview(models.ENTITY_ACCEPTANCE_CRITERIA, ac) for ac in _criteria(db, story.id)
    ]
    for requirement in _requirements(db, story.id):
        previews.append(_preview(models.ENTITY_REQUIREMENT, requirement))
        previews.extend(_relationship_previews(db, requirement, seen))
    return previews


def _info(dependencies, cascade, requires_confirmation=None) -> schemas.DependencyInfo:
    if requires_confirmation is None:
        requires_confirmation = bool(cascade)
    return schemas.DependencyInfo(
        can_delete=not dependencies,
        dependencies=dependencies,
        cascade_delete_count=len(cascade),
        cascade_delete_entities=cascade,
        requires_confirmation=requires_confirmation,
    )


def _validate_epic(db: Session, epic: models.Epic) -> schemas.DependencyInfo:
    dependencies, cascade, seen = [], [], set()
    for story in _stories(db, epic.id):
        dependencies.append(
            schemas.DependencyDetail(
                entity_type=models.ENTITY_USER_STORY,
                entity_id=story.id,
                reference_id=story.reference_id,
                title=story.title,
                reason="Epic contains user stories",
            )
        )
        cascade.append(_preview(models.ENTITY_USER_STORY, story))
        cascade.extend(_story_subtree(db, story, seen))
    return _info(dependencies, cascade)


def _validate_user_story(db: Session, story: models.UserStory) -> schemas.DependencyInfo:
    dependencies, cascade, seen = [], [], set()
    for ac in _criteria(db, story.id):
        dependencies.append(
            schemas.DependencyDetail(
                entity_type=models.ENTITY_ACCEPTANCE_CRITERIA,
                entity_id=ac.id,
                reference_id=ac.reference_id,
                title=ac.title,
                reason="User story contains acceptance criteria",
            )
        )
        cascade.append(_preview(models.ENTITY_ACCEPTANCE_CRITERIA, ac))
    for requirement in _requirements(db, story.id):
        dependencies.append(
            schemas.DependencyDetail(
                entity_type=models.ENTITY_REQUIREMENT,
                entity_id=requirement.id,
                reference_id=requirement.reference_id,
                title=requirement.title,
                reason="User story contains requirements",
            )
        )
        cascade.append(_preview(models.ENTITY_REQUIREMENT, requirement))
        cascade.extend(_relationship_previews(db, requirement, seen))
    return _info(dependencies, cascade)


def _validate_acceptance_criteria(
    db: Session, criteria: models.AcceptanceCriteria
) -> schemas.DependencyInfo:
    dependencies, cascade = [], []
    siblings = len(_criteria(db, criteria.user_story_id))
    if siblings <= 1:
        story = criteria.user_story
        dependencies.append(
            schemas.DependencyDetail(
                entity_type=models.ENTITY_USER_STORY,
                entity_id=criteria.user_story_id,
                reference_id=story.reference_id if story else "",
                title=story.title if story else "",
                reason=LAST_AC_REASON,
            )
        )
    linked = (
        db.query(models.Requirement)
        .filter(models.Requirement.acceptance_criteria_id == criteria.id)
        .order_by(models.Requirement.created_at, models.Requirement.id)
        .all()
    )
    for requirement in linked:
        cascade.append(
            _preview(UNLINK_ENTITY, requirement, title=f"Unlink: {requirement.title}")
        )
    return _info(dependencies, cascade, requires_confirmation=bool(cascade) or siblings <= 1)


def _validate_requirement(db: Session, requirement: models.Requirement) -> schemas.DependencyInfo:
    return _info([], _relationship_previews(db, requirement, set()))


_VALIDATORS = {
    models.ENTITY_EPIC: _validate_epic,
    models.ENTITY_USER_STORY: _validate_user_story,
    models.ENTITY_ACCEPTANCE_CRITERIA: _validate_acceptance_criteria,
    models.ENTITY_REQUIREMENT: _validate_requirement,
}


def validate_delete(db: Session, entity_type: str, entity_id: UUID) -> schemas.DependencyInfo:
    """Report blockers and the full cascade preview without mutating anything."""

    target = _load(db, entity_type, entity_id)
    logger.debug(
        "validating deletion", extra={"entity_type": entity_type, "entity_id": str(entity_id)}
    )
    return _VALIDATORS[entity_type](db, target)


@dataclass
class _Cascade:
    actor_id: UUID
    transaction_id: str
    force: bool
    deleted: list[schemas.CascadeDeletedEntity] = field(default_factory=list)
    removed: list[tuple[str, UUID]] = field(default_factory=list)

    def record(self, entity_type: str, entity_id: UUID, reference_id: str) -> None:
        self.deleted.append(
            schemas.CascadeDeletedEntity(
                entity_type=entity_type, entity_id=entity_id, reference_id=reference_id
            )
        )


def _finish(
    db: Session,
    ctx: _Cascade,
    entity_type: str,
    obj,
    cascade_start: int,
    root: bool,
    extra_details: dict | None = None,
) -> models.AuditLog:
    entity_id, reference_id, title = obj.id, obj.reference_id, obj.title
    comment_count = comments.delete_for_entity(db, entity_type, entity_id)
    db.delete(obj)
    db.flush()
    details = {
        "title": title,
        "force": ctx.force,
        "cascade_count": len(ctx.deleted) - cascade_start,
        "comments_deleted": comment_count,
    }
    details.update(extra_details or {})
    ctx.removed.append((entity_type, entity_id))
    return audit.log_action(
        db,
        ctx.actor_id,
        "delete" if root else "cascade_delete",
        entity_type,
        entity_id,
        details,
        reference_id=reference_id,
        transaction_id=ctx.transaction_id,
    )


def _delete_requirement(db: Session, requirement: models.Requirement, ctx: _Cascade, root: bool = False):
    start = len(ctx.deleted)
    for rel in _relationships(db, requirement.id):
        ctx.record(REL_ENTITY, rel.id, rel.reference_id)
        db.delete(rel)
    db.flush()
    return _finish(db, ctx, models.ENTITY_REQUIREMENT, requirement, start, root)


def _delete_acceptance_criteria(
    db: Session, criteria: models.AcceptanceCriteria, ctx: _Cascade, root: bool = False
):
    start = len(ctx.deleted)
    linked = (
        db.query(models.Requirement)
        .filter(models.Requirement.acceptance_criteria_id == criteria.id)
        .all()
    )
    for requirement in linked:
        requirement.acceptance_criteria_id = None
    db.flush()
    return _finish(
        db,
        ctx,
        models.ENTITY_ACCEPTANCE_CRITERIA,
        criteria,
        start,
        root,
        {"unlinked_requirements": [str(r.id) for r in linked]},
    )


def _delete_user_story(db: Session, story: models.UserStory, ctx: _Cascade, root: bool = False):
    start = len(ctx.deleted)
    for criteria in _criteria(db, story.id):
        ctx.record(models.ENTITY_ACCEPTANCE_CRITERIA, criteria.id, criteria.reference_id)
        _delete_acceptance_criteria(db, criteria, ctx)
    for requirement in _requirements(db, story.id):
        ctx.record(models.ENTITY_REQUIREMENT, requirement.id, requirement.reference_id)
        _delete_requirement(db, requirement, ctx)
    return _finish(db, ctx, models.ENTITY_USER_STORY, story, start, root)


def _delete_epic(db: Session, epic: models.Epic, ctx: _Cascade, root: bool = False):
    start = len(ctx.deleted)
    for story in _stories(db, epic.id):
        ctx.record(models.ENTITY_USER_STORY, story.id, story.reference_id)
        _delete_user_story(db, story, ctx)
    epic.steering_documents.clear()
    db.flush()
    return _finish(db, ctx, models.ENTITY_EPIC, epic, start, root)


_DELETERS = {
    models.ENTITY_EPIC: _delete_epic,
    models.ENTITY_USER_STORY: _delete_user_story,
    models.ENTITY_ACCEPTANCE_CRITERIA: _delete_acceptance_criteria,
    models.ENTITY_REQUIREMENT: _delete_requirement,
}


def delete(
    db: Session, entity_type: str, entity_id: UUID, actor_id: UUID, force: bool = False
) -> schemas.DeletionResult:
    """Delete an entity, cascading through its subtree when ``force`` is set.

    Safe mode refuses blocked deletes: the last acceptance criteria of a story
    raises InvariantViolation, any other blocker raises HasDependencies.
    Unexpected failures roll back the whole tree and surface as
    TransactionFailed; the cause is logged, not returned.
    """

    ctx = _Cascade(actor_id=actor_id, transaction_id=new_transaction_id(), force=force)
    log_extra = {
        "entity_type": entity_type,
        "entity_id": str(entity_id),
        "transaction_id": ctx.transaction_id,
    }
    try:
        with transaction(db):
            target = _load(db, entity_type, entity_id)
            if db.get(models.User, actor_id) is None:
                raise NotFound("user not found")
            info = _VALIDATORS[entity_type](db, target)
            if not info.can_delete and not force:
                if entity_type == models.ENTITY_ACCEPTANCE_CRITERIA:
                    raise InvariantViolation(
                        "cannot delete the last acceptance criteria of a user story"
                    )
                raise HasDependencies(
                    f"{_label(entity_type)} has dependencies; use force to delete",
                    dependencies=info.dependencies,
                )
            reference_id = target.reference_id
            log = _DELETERS[entity_type](db, target, ctx, root=True)
            deleted_at = log.created_at
            audit_log_id = log.id
    except DomainError:
        raise
    except Exception as exc:
        logger.error("deletion transaction failed", extra=log_extra, exc_info=True)
        raise TransactionFailed(f"failed to delete {_label(entity_type)}") from exc

    for removed_type, removed_id in ctx.removed:
        search.remove_entity(removed_type, removed_id)
    logger.info(
        "deleted %s %s", entity_type, reference_id, extra={**log_extra, "cascade_count": len(ctx.deleted)}
    )
    return schemas.DeletionResult(
        entity_type=entity_type,
        entity_id=entity_id,
        reference_id=reference_id,
        deleted_at=deleted_at or datetime.now(timezone.utc),
        deleted_by=actor_id,
        cascade_deleted=ctx.deleted,
        audit_log_id=audit_log_id,
        transaction_id=ctx.transaction_id,
    )
