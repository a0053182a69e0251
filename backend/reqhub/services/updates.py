from __future__ import annotations

from sqlalchemy.orm import Session

from . import comments, status_models
from .common import require_user, validate_priority

# purpose: field updates shared by epics, user stories and requirements
# status: active


def apply_updates(db: Session, entity_type: str, obj, data: dict) -> None:
    """Apply a partial update, routing status through the workflow and
    description edits through inline-comment anchoring."""

    if data.get("priority") is not None:
        obj.priority = validate_priority(data["priority"])
    if data.get("assignee_id") is not None:
        require_user(db, data["assignee_id"])
        obj.assignee_id = data["assignee_id"]
    if data.get("status") is not None:
        status_models.ensure_status_change(db, entity_type, obj.status, data["status"])
        obj.status = data["status"]
    if data.get("title") is not None:
        obj.title = data["title"]
    if "description" in data and data["description"] != obj.description:
        obj.description = data["description"]
        db.flush()
        comments.on_description_changed(db, entity_type, obj.id, obj.description)
