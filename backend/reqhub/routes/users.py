from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from uuid import UUID

from ..database import get_db
from .. import models, schemas, auth
from ..services import users
from ..services.common import normalize_paging

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/me", response_model=schemas.UserOut)
async def read_profile(current_user: models.User = Depends(auth.get_current_user)):
    return current_user


@router.get("", response_model=schemas.Page[schemas.UserOut])
async def list_users(
    role: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    rows, total = users.list_users(db, role=role, limit=limit, offset=offset)
    limit, offset = normalize_paging(limit, offset)
    return schemas.page_of(schemas.UserOut, rows, total, limit, offset)


@router.post("", response_model=schemas.UserOut, status_code=201)
async def create_user(
    payload: schemas.UserCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    auth.require_config_manager(current_user)
    return users.create_user(db, payload)


@router.get("/{user_id}", response_model=schemas.UserOut)
async def get_user(
    user_id: UUID,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    return users.get_user(db, user_id)


@router.put("/{user_id}", response_model=schemas.UserOut)
async def update_user(
    user_id: UUID,
    payload: schemas.UserUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    auth.require_config_manager(current_user)
    return users.update_user(db, user_id, payload)


@router.delete("/{user_id}", status_code=204)
async def delete_user(
    user_id: UUID,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    auth.require_config_manager(current_user)
    users.delete_user(db, user_id)
