"""Search across epics, user stories, acceptance criteria and requirements.

A query that looks like a reference id (``EP-001``, ``us-12``) is answered by
an exact lookup. Anything else goes to the full text index when one is
configured and falls back to ``ILIKE`` over titles and descriptions.
"""

from __future__ import annotations

import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session

from .. import models, schemas
from .. import search as search_index
from ..errors import ValidationError
from ..reference_ids import detect, get_by_reference_id
from .common import DEFAULT_LIMIT, MAX_LIMIT

# purpose: reference-id aware search with filters, sorting, paging and suggestions
# status: active
# depends_on: reqhub.search (optional Elasticsearch index)

logger = logging.getLogger(__name__)

SEARCHABLE = {
    models.ENTITY_EPIC: models.Epic,
    models.ENTITY_USER_STORY: models.UserStory,
    models.ENTITY_ACCEPTANCE_CRITERIA: models.AcceptanceCriteria,
    models.ENTITY_REQUIREMENT: models.Requirement,
}
SORT_FIELDS = ("priority", "created_at", "updated_at", "title")
SORT_ORDERS = ("asc", "desc")
MAX_SUGGESTIONS = 50

EXACT_TITLE_SCORE = 1.0
TITLE_SCORE = 0.8
DESCRIPTION_SCORE = 0.5


def validate_options(options: schemas.SearchOptions) -> schemas.SearchOptions:
    if options.limit < 0 or options.limit > MAX_LIMIT:
        raise ValidationError(f"limit must be between 0 and {MAX_LIMIT}")
    if options.offset < 0:
        raise ValidationError("offset must be non-negative")
    if options.sort_by is not None and options.sort_by not in SORT_FIELDS:
        raise ValidationError(f"invalid sort_by: {options.sort_by}")
    if options.sort_order not in SORT_ORDERS:
        raise ValidationError(f"invalid sort_order: {options.sort_order}")
    for entity_type in options.entity_types:
        if entity_type not in SEARCHABLE:
            raise ValidationError(f"invalid entity type: {entity_type}")
    if options.priority is not None and options.priority not in models.PRIORITY_LABELS:
        raise ValidationError("invalid priority: must be between 1 (Critical) and 4 (Low)")
    if options.created_from and options.created_to and options.created_from > options.created_to:
        raise ValidationError("created_from must not be after created_to")
    limit = options.limit or DEFAULT_LIMIT
    return options.model_copy(update={"limit": limit, "query": options.query.strip()})


def _result(entity_type: str, obj, relevance: float) -> schemas.SearchResult:
    return schemas.SearchResult(
        id=obj.id,
        reference_id=obj.reference_id,
        type=entity_type,
        title=obj.title,
        description=obj.description,
        priority=getattr(obj, "priority", None),
        status=getattr(obj, "status", None),
        created_at=obj.created_at,
        relevance=relevance,
    )


def _text_score(obj, text: str) -> float:
    needle = text.lower()
    title = (getattr(obj, "title", "") or "").lower()
    if title == needle:
        return EXACT_TITLE_SCORE
    if needle in title:
        return TITLE_SCORE
    return DESCRIPTION_SCORE


def _filtered(db: Session, entity_type: str, options: schemas.SearchOptions):
    """Base query for one entity type, or None when a filter cannot apply to it."""

    model = SEARCHABLE[entity_type]
    is_criteria = entity_type == models.ENTITY_ACCEPTANCE_CRITERIA
    if is_criteria and (
        options.assignee_id is not None or options.priority is not None or options.status
    ):
        return None
    query = db.query(model)
    if options.creator_id is not None:
        column = model.author_id if is_criteria else model.creator_id
        query = query.filter(column == options.creator_id)
    if options.assignee_id is not None:
        query = query.filter(model.assignee_id == options.assignee_id)
    if options.priority is not None:
        query = query.filter(model.priority == options.priority)
    if options.status:
        query = query.filter(model.status == options.status)
    if options.created_from is not None:
        query = query.filter(model.created_at >= options.created_from)
    if options.created_to is not None:
        query = query.filter(model.created_at <= options.created_to)
    return query


def _text_matches(db: Session, entity_type: str, options: schemas.SearchOptions, indexed):
    model = SEARCHABLE[entity_type]
    query = _filtered(db, entity_type, options)
    if query is None:
        return []
    if not options.query:
        return [_result(entity_type, obj, 0.0) for obj in query.all()]
    if indexed is not None:
        scores = indexed.get(entity_type, {})
        if not scores:
            return []
        rows = query.filter(model.id.in_(list(scores))).all()
        return [_result(entity_type, obj, scores[obj.id]) for obj in rows]
    pattern = f"%{options.query}%"
    if entity_type == models.ENTITY_ACCEPTANCE_CRITERIA:
        condition = model.description.ilike(pattern)
    else:
        condition = or_(model.title.ilike(pattern), model.description.ilike(pattern))
    return [_result(entity_type, obj, _text_score(obj, options.query)) for obj in query.filter(condition).all()]


def _sort_key(field: str):
    def key(result: schemas.SearchResult):
        value = getattr(result, field)
        return value.lower() if isinstance(value, str) else value

    return key


def _sort(results: list[schemas.SearchResult], options: schemas.SearchOptions) -> list[schemas.SearchResult]:
    results = sorted(results, key=lambda r: r.created_at, reverse=True)
    if options.sort_by is None:
        if options.query:
            results.sort(key=lambda r: r.relevance, reverse=True)
        return results
    present = [r for r in results if getattr(r, options.sort_by) is not None]
    missing = [r for r in results if getattr(r, options.sort_by) is None]
    present.sort(key=_sort_key(options.sort_by), reverse=options.sort_order == "desc")
    return present + missing


def search_by_reference_id(
    db: Session, reference_id: str, entity_types: list[str] | None = None
) -> list[schemas.SearchResult]:
    pattern = detect(reference_id)
    if not pattern.is_reference_id or pattern.entity_type not in SEARCHABLE:
        return []
    if entity_types and pattern.entity_type not in entity_types:
        return []
    obj = get_by_reference_id(db, pattern.entity_type, reference_id)
    if obj is None:
        return []
    return [_result(pattern.entity_type, obj, 1.0)]


def search(db: Session, options: schemas.SearchOptions) -> schemas.SearchResponse:
    options = validate_options(options)
    entity_types = options.entity_types or list(SEARCHABLE)

    if options.query and detect(options.query).is_reference_id:
        results = search_by_reference_id(db, options.query, entity_types)
    else:
        indexed = search_index.search_ids(options.query, entity_types) if options.query else None
        results = []
        for entity_type in entity_types:
            results.extend(_text_matches(db, entity_type, options, indexed))
        results = _sort(results, options)

    total = len(results)
    page = results[options.offset : options.offset + options.limit]
    logger.debug(
        "search completed",
        extra={"search_query": options.query, "total_count": total, "index": search_index.enabled()},
    )
    return schemas.SearchResponse(
        results=page,
        total_count=total,
        limit=options.limit,
        offset=options.offset,
        query=options.query,
    )


def suggestions(db: Session, query: str, limit: int = 10) -> list[schemas.Suggestion]:
    """Titles and reference ids that begin with ``query``, epics first."""

    text = (query or "").strip()
    if not text:
        return []
    if limit <= 0 or limit > MAX_SUGGESTIONS:
        raise ValidationError(f"limit must be between 1 and {MAX_SUGGESTIONS}")
    pattern = f"{text}%"
    found: list[schemas.Suggestion] = []
    for entity_type, model in SEARCHABLE.items():
        text_column = (
            model.description if entity_type == models.ENTITY_ACCEPTANCE_CRITERIA else model.title
        )
        rows = (
            db.query(model)
            .filter(or_(text_column.ilike(pattern), model.reference_id.ilike(pattern)))
            .order_by(model.reference_id)
            .limit(limit - len(found))
            .all()
        )
        found.extend(
            schemas.Suggestion(reference_id=obj.reference_id, type=entity_type, title=obj.title)
            for obj in rows
        )
        if len(found) >= limit:
            break
    return found
