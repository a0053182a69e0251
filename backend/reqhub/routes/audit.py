from uuid import UUID
from datetime import datetime
from sqlalchemy.orm import Session
from fastapi import APIRouter, Depends
from ..database import get_db
from ..auth import get_current_user
from ..services.common import normalize_paging
from .. import models, schemas, audit

router = APIRouter(prefix="/api/audit", tags=["audit"])


@router.get("", response_model=list[schemas.AuditLogOut])
async def list_logs(
    entity_type: str | None = None,
    entity_id: UUID | None = None,
    transaction_id: str | None = None,
    user_id: UUID | None = None,
    limit: int | None = None,
    offset: int | None = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    limit, offset = normalize_paging(limit, offset)
    return audit.list_logs(
        db,
        target_type=entity_type,
        target_id=entity_id,
        transaction_id=transaction_id,
        user_id=user_id,
        limit=limit,
        offset=offset,
    )


@router.get("/report", response_model=list[schemas.AuditReportItem])
async def audit_report(
    start: datetime,
    end: datetime,
    user_id: UUID | None = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    return audit.generate_report(db, start, end, user_id)
