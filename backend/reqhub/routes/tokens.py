from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from uuid import UUID

from ..database import get_db
from ..auth import get_current_user
from .. import models, schemas
from ..services import tokens
from ..services.common import normalize_paging

router = APIRouter(prefix="/api/pats", tags=["personal-access-tokens"])


@router.post("", response_model=schemas.PATCreated, status_code=201)
async def create_token(
    payload: schemas.PATCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    full_token, pat = tokens.create_token(db, user, payload)
    return schemas.PATCreated(token=full_token, pat=schemas.PATOut.model_validate(pat))


@router.get("", response_model=schemas.Page[schemas.PATOut])
async def list_tokens(
    limit: int | None = None,
    offset: int | None = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    rows, total = tokens.list_tokens(db, user.id, limit, offset)
    limit, offset = normalize_paging(limit, offset)
    return schemas.page_of(schemas.PATOut, rows, total, limit, offset)


@router.get("/{pat_id}", response_model=schemas.PATOut)
async def get_token(
    pat_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return tokens.get_token(db, pat_id, user.id)


@router.delete("/{pat_id}", status_code=204)
async def revoke_token(
    pat_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    tokens.revoke_token(db, pat_id, user.id)
