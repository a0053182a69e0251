"""Password sign-in, signed access tokens and rotating refresh tokens.

A refresh token has the form ``<record id>.<secret>``. Only a bcrypt hash of
the secret is stored, and every successful refresh replaces the record.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy.orm import Session

from .. import models, schemas, security
from ..database import transaction
from ..errors import AuthInvalid

# purpose: login, token refresh and logout, profile password changes, refresh token cleanup
# status: active
# depends_on: reqhub.security (bcrypt, JWT)

logger = logging.getLogger(__name__)

REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "30"))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def set_password(db: Session, user: models.User, password: str) -> None:
    user.password_hash = security.get_password_hash(password)
    db.flush()


def authenticate(db: Session, username: str, password: str) -> models.User:
    user = db.query(models.User).filter(models.User.username == username).first()
    if user is None or not security.verify_password(password, user.password_hash):
        logger.info("failed login", extra={"username": username})
        raise AuthInvalid("invalid credentials")
    return user


def _new_refresh_token(db: Session, user: models.User) -> str:
    secret = security.generate_secret()
    record = models.RefreshToken(
        user_id=user.id,
        token_hash=security.hash_secret(secret),
        expires_at=_utcnow() + timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS),
    )
    db.add(record)
    db.flush()
    return f"{record.id.hex}.{secret}"


def _issue(db: Session, user: models.User) -> schemas.Token:
    lifetime = timedelta(minutes=security.ACCESS_TOKEN_EXPIRE_MINUTES)
    access_token = security.create_access_token(
        {"sub": str(user.id), "username": user.username, "role": user.role}, lifetime
    )
    return schemas.Token(
        access_token=access_token,
        expires_at=_utcnow() + lifetime,
        refresh_token=_new_refresh_token(db, user),
        user=schemas.UserOut.model_validate(user),
    )


def login(db: Session, username: str, password: str) -> schemas.Token:
    user = authenticate(db, username, password)
    with transaction(db):
        token = _issue(db, user)
    logger.info("user logged in", extra={"user_id": str(user.id)})
    return token


def _find_refresh_token(db: Session, refresh_token: str) -> models.RefreshToken:
    record_id, _, secret = (refresh_token or "").partition(".")
    try:
        key = UUID(hex=record_id)
    except ValueError:
        raise AuthInvalid("invalid refresh token")
    record = db.get(models.RefreshToken, key)
    if record is None or not security.verify_secret(secret, record.token_hash):
        raise AuthInvalid("invalid refresh token")
    return record


def refresh(db: Session, refresh_token: str) -> schemas.Token:
    """Exchange a refresh token for a new access token and a new refresh token."""

    record = _find_refresh_token(db, refresh_token)
    if _aware(record.expires_at) <= _utcnow():
        with transaction(db):
            db.delete(record)
        raise AuthInvalid("refresh token expired")
    user = db.get(models.User, record.user_id)
    if user is None:
        raise AuthInvalid("invalid refresh token")
    with transaction(db):
        db.delete(record)
        token = _issue(db, user)
    logger.info("refreshed session", extra={"user_id": str(user.id)})
    return token


def logout(db: Session, refresh_token: str) -> None:
    record = _find_refresh_token(db, refresh_token)
    with transaction(db):
        db.delete(record)


def user_from_access_token(db: Session, token: str) -> models.User:
    claims = security.decode_access_token(token)
    try:
        user_id = UUID(str(claims["sub"]))
    except ValueError:
        raise AuthInvalid("invalid token")
    user = db.get(models.User, user_id)
    if user is None:
        raise AuthInvalid("invalid token")
    return user


def change_password(
    db: Session, user: models.User, payload: schemas.ChangePasswordRequest
) -> None:
    """Replace the password and sign out every other session of ``user``."""

    if not security.verify_password(payload.current_password, user.password_hash):
        raise AuthInvalid("invalid current password")
    with transaction(db):
        set_password(db, user, payload.new_password)
        db.query(models.RefreshToken).filter(models.RefreshToken.user_id == user.id).delete(
            synchronize_session=False
        )
    logger.info("password changed", extra={"user_id": str(user.id)})


def cleanup_expired_refresh_tokens(db: Session) -> int:
    with transaction(db):
        count = (
            db.query(models.RefreshToken)
            .filter(models.RefreshToken.expires_at <= _utcnow())
            .delete(synchronize_session=False)
        )
    logger.info("removed expired refresh tokens", extra={"count": count})
    return count
