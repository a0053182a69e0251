from __future__ import annotations

import re
from dataclasses import dataclass

from sqlalchemy import func
from sqlalchemy.orm import Session

from . import models

# purpose: allocate, parse, and detect human-readable reference ids (EP-001, US-012, ...)
# status: active

PREFIX_BY_ENTITY = {
    models.ENTITY_EPIC: "EP",
    models.ENTITY_USER_STORY: "US",
    models.ENTITY_ACCEPTANCE_CRITERIA: "AC",
    models.ENTITY_REQUIREMENT: "REQ",
    models.ENTITY_STEERING_DOCUMENT: "STD",
}
ENTITY_BY_PREFIX = {prefix: entity for entity, prefix in PREFIX_BY_ENTITY.items()}
MODEL_BY_ENTITY = {
    models.ENTITY_EPIC: models.Epic,
    models.ENTITY_USER_STORY: models.UserStory,
    models.ENTITY_ACCEPTANCE_CRITERIA: models.AcceptanceCriteria,
    models.ENTITY_REQUIREMENT: models.Requirement,
    models.ENTITY_STEERING_DOCUMENT: models.SteeringDocument,
}

REFERENCE_ID_RE = re.compile(r"^(EP|US|AC|REQ|STD)-(\d+)$", re.IGNORECASE)


@dataclass(frozen=True)
class ReferenceIDPattern:
    is_reference_id: bool
    entity_type: str | None
    number: str | None
    original_query: str


def detect(query: str) -> ReferenceIDPattern:
    """Classify ``query`` as a reference id or free text.

    Surrounding whitespace is ignored, the prefix is matched case-insensitively,
    and the numeric part is kept exactly as written (``US-007`` stays ``007``).
    """

    match = REFERENCE_ID_RE.match(query.strip())
    if not match:
        return ReferenceIDPattern(False, None, None, query)
    prefix, number = match.groups()
    return ReferenceIDPattern(True, ENTITY_BY_PREFIX[prefix.upper()], number, query)


def format_reference_id(prefix: str, value: int) -> str:
    return f"{prefix}-{value:03d}"


def parse_reference_id(reference_id: str) -> tuple[str, int]:
    match = REFERENCE_ID_RE.match(reference_id.strip())
    if not match:
        raise ValueError(f"not a reference id: {reference_id!r}")
    prefix, number = match.groups()
    return prefix.upper(), int(number)


def next_reference_id(db: Session, entity_type: str) -> str:
    """Reserve the next reference id for ``entity_type`` inside the caller's transaction."""

    prefix = PREFIX_BY_ENTITY[entity_type]
    counter = (
        db.query(models.ReferenceCounter)
        .filter(models.ReferenceCounter.prefix == prefix)
        .with_for_update()
        .first()
    )
    if counter is None:
        counter = models.ReferenceCounter(prefix=prefix, last_value=0)
        db.add(counter)
    counter.last_value = (counter.last_value or 0) + 1
    db.flush()
    return format_reference_id(prefix, counter.last_value)


def get_by_reference_id(db: Session, entity_type: str, reference_id: str):
    model = MODEL_BY_ENTITY[entity_type]
    return (
        db.query(model)
        .filter(func.upper(model.reference_id) == reference_id.strip().upper())
        .first()
    )
