"""Audit trail for destructive operations.

Entries are written inside the caller's transaction so a rolled back cascade
leaves no trace; every row of one cascade shares its ``transaction_id``.
"""

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from . import models

logger = logging.getLogger(__name__)


def log_action(
    db: Session,
    user_id: str | UUID,
    action: str,
    target_type: str | None = None,
    target_id: str | UUID | None = None,
    details: dict | None = None,
    *,
    reference_id: str | None = None,
    transaction_id: str | None = None,
) -> models.AuditLog:
    entry = models.AuditLog(
        user_id=UUID(str(user_id)),
        action=action,
        target_type=target_type,
        target_id=UUID(str(target_id)) if target_id else None,
        reference_id=reference_id,
        transaction_id=transaction_id,
        details=details or {},
        created_at=datetime.now(timezone.utc),
    )
    db.add(entry)
    db.flush()
    logger.info(
        "audit %s %s %s",
        action,
        target_type,
        reference_id or target_id,
        extra={
            "audit_id": str(entry.id),
            "performed_by": str(user_id),
            "transaction_id": transaction_id,
        },
    )
    return entry


def list_logs(
    db: Session,
    *,
    target_type: str | None = None,
    target_id: UUID | None = None,
    transaction_id: str | None = None,
    user_id: UUID | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[models.AuditLog]:
    """Newest first."""

    query = db.query(models.AuditLog)
    if target_type:
        query = query.filter(models.AuditLog.target_type == target_type)
    if target_id:
        query = query.filter(models.AuditLog.target_id == target_id)
    if transaction_id:
        query = query.filter(models.AuditLog.transaction_id == transaction_id)
    if user_id:
        query = query.filter(models.AuditLog.user_id == user_id)
    return (
        query.order_by(models.AuditLog.created_at.desc(), models.AuditLog.id)
        .offset(offset)
        .limit(limit)
        .all()
    )


def generate_report(
    db: Session,
    start: datetime,
    end: datetime,
    user_id: UUID | None = None,
) -> list[dict]:
    """Count entries per action and entity type between ``start`` and ``end``."""

    entries = db.query(
        models.AuditLog.action,
        models.AuditLog.target_type,
        func.count(models.AuditLog.id),
    ).filter(models.AuditLog.created_at.between(start, end))
    if user_id:
        entries = entries.filter(models.AuditLog.user_id == user_id)
    grouped = entries.group_by(models.AuditLog.action, models.AuditLog.target_type).all()
    return [
        {"action": action, "entity_type": entity_type, "count": count}
        for action, entity_type, count in sorted(grouped, key=lambda g: (g[0], g[1] or ""))
    ]
