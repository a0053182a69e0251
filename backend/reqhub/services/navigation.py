from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from .. import models, schemas
from ..errors import NotFound, ValidationError
from ..reference_ids import ENTITY_BY_PREFIX, get_by_reference_id, parse_reference_id
from . import acceptance_criteria, requirements, user_stories
from .common import get_or_404, paginate

# purpose: hierarchical read views (epic -> story -> criteria/requirements -> relationships)
# status: active

EXPANDABLE = ("user_stories", "acceptance_criteria", "requirements", "relationships")


def parse_expand(expand: str | None) -> set[str]:
    """Split a comma separated ``expand`` value; unknown names are rejected."""

    if not expand:
        return set()
    fields = {part.strip() for part in expand.split(",") if part.strip()}
    unknown = fields - set(EXPANDABLE)
    if unknown:
        raise ValidationError(f"invalid expand value: {', '.join(sorted(unknown))}")
    return fields


def _requirement_node(db: Session, requirement: models.Requirement, expand: set[str]) -> schemas.RequirementNode:
    node = schemas.RequirementNode(**dict(schemas.RequirementOut.model_validate(requirement)))
    if "relationships" in expand:
        node.relationships = [
            schemas.RelationshipOut.model_validate(rel)
            for rel in requirements.list_relationships(db, requirement.id)
        ]
    return node


def _story_node(db: Session, story: models.UserStory, expand: set[str]) -> schemas.UserStoryNode:
    node = schemas.UserStoryNode(**dict(schemas.UserStoryOut.model_validate(story)))
    if "acceptance_criteria" in expand:
        node.acceptance_criteria = [
            schemas.AcceptanceCriteriaOut.model_validate(ac)
            for ac in acceptance_criteria.list_by_user_story(db, story.id)
        ]
    if "requirements" in expand:
        node.requirements = [
            _requirement_node(db, requirement, expand)
            for requirement in requirements.list_by_user_story(db, story.id)
        ]
    return node


def _epic_node(db: Session, epic: models.Epic, expand: set[str], with_stories: bool) -> schemas.EpicNode:
    node = schemas.EpicNode(**dict(schemas.EpicOut.model_validate(epic)))
    if with_stories:
        node.user_stories = [
            _story_node(db, story, expand) for story in user_stories.list_by_epic(db, epic.id)
        ]
    return node


def get_hierarchy(
    db: Session,
    *,
    expand: str | None = None,
    creator_id: UUID | None = None,
    assignee_id: UUID | None = None,
    status: str | None = None,
    priority: int | None = None,
    order_by: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
) -> schemas.Page[schemas.EpicNode]:
    fields = parse_expand(expand)
    filters = {
        "creator_id": creator_id,
        "assignee_id": assignee_id,
        "status": status,
        "priority": priority,
    }
    epics, total, limit, offset = paginate(
        db.query(models.Epic), models.Epic, filters, order_by, limit, offset
    )
    nodes = [_epic_node(db, epic, fields, "user_stories" in fields) for epic in epics]
    return schemas.Page[schemas.EpicNode](data=nodes, total_count=total, limit=limit, offset=offset)


def get_epic_hierarchy(db: Session, epic_id: UUID, expand: str | None = None) -> schemas.EpicNode:
    """A single epic always carries its user stories; deeper levels follow ``expand``."""

    epic = get_or_404(db, models.Epic, epic_id, "epic")
    return _epic_node(db, epic, parse_expand(expand), True)


def get_user_story_hierarchy(
    db: Session, story_id: UUID, expand: str | None = None
) -> schemas.UserStoryNode:
    story = get_or_404(db, models.UserStory, story_id, "user story")
    return _story_node(db, story, parse_expand(expand))


def _element(entity_type: str, obj, title: str | None = None) -> schemas.PathElement:
    return schemas.PathElement(
        id=obj.id,
        reference_id=obj.reference_id,
        type=entity_type,
        title=title if title is not None else obj.title,
    )


def get_entity_path(db: Session, entity_type: str, entity_id: UUID) -> list[schemas.PathElement]:
    """Ancestor chain from the epic down to the entity itself."""

    if entity_type == models.ENTITY_EPIC:
        epic = get_or_404(db, models.Epic, entity_id, "epic")
        return [_element(models.ENTITY_EPIC, epic)]
    if entity_type == models.ENTITY_USER_STORY:
        story = get_or_404(db, models.UserStory, entity_id, "user story")
        return [_element(models.ENTITY_EPIC, story.epic), _element(models.ENTITY_USER_STORY, story)]
    if entity_type == models.ENTITY_ACCEPTANCE_CRITERIA:
        criteria = get_or_404(db, models.AcceptanceCriteria, entity_id, "acceptance criteria")
        story = criteria.user_story
        title = criteria.description[:50] + "..."
        return [
            _element(models.ENTITY_EPIC, story.epic),
            _element(models.ENTITY_USER_STORY, story),
            _element(models.ENTITY_ACCEPTANCE_CRITERIA, criteria, title=title),
        ]
    if entity_type == models.ENTITY_REQUIREMENT:
        requirement = get_or_404(db, models.Requirement, entity_id, "requirement")
        story = requirement.user_story
        return [
            _element(models.ENTITY_EPIC, story.epic),
            _element(models.ENTITY_USER_STORY, story),
            _element(models.ENTITY_REQUIREMENT, requirement),
        ]
    raise ValidationError(f"invalid entity type: {entity_type}")


def resolve_reference_id(
    db: Session, reference_id: str, entity_type: str | None = None
) -> schemas.ResolvedReference:
    """Map a reference id such as ``us-012`` to its entity, case-insensitively."""

    try:
        prefix, _ = parse_reference_id(reference_id)
    except ValueError:
        raise ValidationError(f"invalid reference id: {reference_id}")
    detected = ENTITY_BY_PREFIX[prefix]
    if entity_type is not None and entity_type != detected:
        raise ValidationError(f"reference id {reference_id} is not a {entity_type.replace('_', ' ')}")
    obj = get_by_reference_id(db, detected, reference_id)
    if obj is None:
        raise NotFound(f"{detected.replace('_', ' ')} not found")
    return schemas.ResolvedReference(
        entity_type=detected, id=obj.id, reference_id=obj.reference_id, title=obj.title
    )
