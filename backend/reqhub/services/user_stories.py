from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from .. import models, schemas, search
from ..database import transaction
from ..errors import NotFound, ValidationError
from ..reference_ids import get_by_reference_id, next_reference_id
from . import deletion, status_models
from .common import get_or_404, paginate, require_user, validate_priority
from .updates import apply_updates

# purpose: user story CRUD with the "As ..., I want ..., so that ..." description template
# status: active

TEMPLATE_ERROR = (
    "user story description must follow template: "
    "'As [role], I want [function], so that [goal]'"
)


def validate_template(description: str | None) -> None:
    if not description:
        return
    text = description.strip().lower()
    if "as " not in text or "i want" not in text or "so that" not in text:
        raise ValidationError(TEMPLATE_ERROR)


def create_user_story(
    db: Session, creator_id: UUID, payload: schemas.UserStoryCreate
) -> models.UserStory:
    validate_priority(payload.priority)
    validate_template(payload.description)
    with transaction(db):
        get_or_404(db, models.Epic, payload.epic_id, "epic")
        require_user(db, creator_id)
        assignee_id = creator_id
        if payload.assignee_id is not None:
            require_user(db, payload.assignee_id)
            assignee_id = payload.assignee_id
        story = models.UserStory(
            reference_id=next_reference_id(db, models.ENTITY_USER_STORY),
            epic_id=payload.epic_id,
            creator_id=creator_id,
            assignee_id=assignee_id,
            priority=payload.priority,
            status=status_models.initial_status(db, models.ENTITY_USER_STORY),
            title=payload.title,
            description=payload.description,
        )
        db.add(story)
        db.flush()
    search.index_entity(models.ENTITY_USER_STORY, story)
    return story


def get_user_story(db: Session, story_id: UUID) -> models.UserStory:
    return get_or_404(db, models.UserStory, story_id, "user story")


def get_user_story_by_reference(db: Session, reference_id: str) -> models.UserStory:
    story = get_by_reference_id(db, models.ENTITY_USER_STORY, reference_id)
    if story is None:
        raise NotFound("user story not found")
    return story


def list_user_stories(
    db: Session,
    *,
    epic_id: UUID | None = None,
    creator_id: UUID | None = None,
    assignee_id: UUID | None = None,
    status: str | None = None,
    priority: int | None = None,
    order_by: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
):
    filters = {
        "epic_id": epic_id,
        "creator_id": creator_id,
        "assignee_id": assignee_id,
        "status": status,
        "priority": priority,
    }
    return paginate(db.query(models.UserStory), models.UserStory, filters, order_by, limit, offset)


def list_by_epic(db: Session, epic_id: UUID) -> list[models.UserStory]:
    get_or_404(db, models.Epic, epic_id, "epic")
    return (
        db.query(models.UserStory)
        .filter(models.UserStory.epic_id == epic_id)
        .order_by(models.UserStory.created_at, models.UserStory.id)
        .all()
    )


def update_user_story(
    db: Session, story_id: UUID, payload: schemas.UserStoryUpdate
) -> models.UserStory:
    data = payload.model_dump(exclude_unset=True)
    if "description" in data:
        validate_template(data["description"])
    with transaction(db):
        story = get_user_story(db, story_id)
        apply_updates(db, models.ENTITY_USER_STORY, story, data)
        db.flush()
    search.index_entity(models.ENTITY_USER_STORY, story)
    return story


def change_status(db: Session, story_id: UUID, status: str) -> models.UserStory:
    return update_user_story(db, story_id, schemas.UserStoryUpdate(status=status))


def assign_user_story(db: Session, story_id: UUID, assignee_id: UUID | None) -> models.UserStory:
    with transaction(db):
        story = get_user_story(db, story_id)
        if assignee_id is not None:
            require_user(db, assignee_id)
        story.assignee_id = assignee_id
        db.flush()
    return story


def delete_user_story(
    db: Session, story_id: UUID, actor_id: UUID, force: bool = False
) -> schemas.DeletionResult:
    return deletion.delete(db, models.ENTITY_USER_STORY, story_id, actor_id, force)
