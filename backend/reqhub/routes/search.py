from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user
from .. import models, schemas
from ..services import search

router = APIRouter(prefix="/api/search", tags=["search"])


@router.get("", response_model=schemas.SearchResponse)
async def search_entities(
    q: str = "",
    entity_types: list[str] = Query(default=[]),
    creator_id: UUID | None = None,
    assignee_id: UUID | None = None,
    priority: int | None = None,
    status: str | None = None,
    created_from: datetime | None = None,
    created_to: datetime | None = None,
    sort_by: str | None = None,
    sort_order: str = "desc",
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    options = schemas.SearchOptions(
        query=q,
        entity_types=entity_types,
        creator_id=creator_id,
        assignee_id=assignee_id,
        priority=priority,
        status=status,
        created_from=created_from,
        created_to=created_to,
        sort_by=sort_by,
        sort_order=sort_order,
        limit=limit,
        offset=offset,
    )
    return search.search(db, options)


@router.get("/suggestions", response_model=list[schemas.Suggestion])
async def suggestions(
    q: str,
    limit: int = 10,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return search.suggestions(db, q, limit)
