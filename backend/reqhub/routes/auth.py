from fastapi import APIRouter, Depends, Request
import os
from sqlalchemy.orm import Session
from slowapi import Limiter
from slowapi.util import get_remote_address

from ..database import get_db
from .. import models, schemas
from ..auth import get_current_user
from ..services import accounts

limiter = Limiter(key_func=get_remote_address)
testing = os.getenv("TESTING") == "1"


def rate_limit(limit: str):
    if testing:
        def wrapper(func):
            return func
        return wrapper
    return limiter.limit(limit)


router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login", response_model=schemas.Token)
@rate_limit("10/minute")
async def login(request: Request, payload: schemas.LoginRequest, db: Session = Depends(get_db)):
    return accounts.login(db, payload.username, payload.password)


@router.post("/refresh", response_model=schemas.Token)
@rate_limit("30/minute")
async def refresh(request: Request, payload: schemas.RefreshRequest, db: Session = Depends(get_db)):
    return accounts.refresh(db, payload.refresh_token)


@router.post("/logout", status_code=204)
async def logout(payload: schemas.RefreshRequest, db: Session = Depends(get_db)):
    accounts.logout(db, payload.refresh_token)


@router.get("/profile", response_model=schemas.UserOut)
async def profile(current_user: models.User = Depends(get_current_user)):
    return current_user


@router.post("/change-password", status_code=204)
async def change_password(
    payload: schemas.ChangePasswordRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    accounts.change_password(db, current_user, payload)
