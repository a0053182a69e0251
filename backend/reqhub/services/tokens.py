from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models, schemas, security
from ..database import in_transaction, transaction
from ..errors import AuthInvalid, InvariantViolation, NotFound, Unauthorized, ValidationError
from .common import normalize_paging

# purpose: personal access token lifecycle (issue, validate, list, revoke, expire)
# status: active
# depends_on: reqhub.security (bcrypt hashing, token generation)

logger = logging.getLogger(__name__)

DEFAULT_SCOPES = ["full_access"]
VALID_SCOPES = {"full_access"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_expired(pat: models.PersonalAccessToken, now: datetime | None = None) -> bool:
    expires_at = _aware(pat.expires_at)
    return expires_at is not None and expires_at <= (now or _utcnow())


def create_token(
    db: Session, user: models.User, payload: schemas.PATCreate
) -> tuple[str, models.PersonalAccessToken]:
    """Issue a token for ``user``; the full token is returned once and never stored."""

    name = payload.name.strip()
    if not name:
        raise ValidationError("token name is required")
    scopes = payload.scopes or list(DEFAULT_SCOPES)
    for scope in scopes:
        if scope not in VALID_SCOPES:
            raise ValidationError(f"invalid scope: {scope}")
    expires_at = _aware(payload.expires_at)
    if expires_at is not None and expires_at <= _utcnow():
        raise ValidationError("expiration date must be in the future")

    full_token, secret = security.generate_token(security.PAT_PREFIX)
    with transaction(db):
        duplicate = (
            db.query(models.PersonalAccessToken)
            .filter_by(user_id=user.id, name=name)
            .first()
        )
        if duplicate:
            raise InvariantViolation("a token with this name already exists")
        pat = models.PersonalAccessToken(
            user_id=user.id,
            name=name,
            token_hash=security.hash_secret(secret),
            prefix=security.PAT_PREFIX,
            scopes=scopes,
            expires_at=expires_at,
        )
        db.add(pat)
        db.flush()
    logger.info(
        "issued personal access token",
        extra={"pat_id": str(pat.id), "user_id": str(user.id), "pat_name": name},
    )
    return full_token, pat


def validate_token(db: Session, token: str) -> models.User:
    """Return the owner of ``token`` or raise AuthInvalid."""

    if not token:
        raise AuthInvalid("token is empty")
    if not token.startswith(security.PAT_PREFIX):
        raise AuthInvalid("invalid token prefix")
    if len(token) <= len(security.PAT_PREFIX):
        raise AuthInvalid("token is too short")
    secret = token[len(security.PAT_PREFIX):]

    now = _utcnow()
    candidates = (
        db.query(models.PersonalAccessToken)
        .filter(models.PersonalAccessToken.prefix == security.PAT_PREFIX)
        .all()
    )
    for pat in candidates:
        if is_expired(pat, now):
            continue
        if not security.verify_secret(secret, pat.token_hash):
            continue
        user = db.get(models.User, pat.user_id)
        if user is None:
            raise AuthInvalid("invalid token")
        _touch(db, pat, now)
        return user
    raise AuthInvalid("invalid token")


def _touch(db: Session, pat: models.PersonalAccessToken, now: datetime) -> None:
    pat_id = pat.id
    try:
        pat.last_used_at = now
        if in_transaction(db):
            db.flush()
        else:
            db.commit()
    except SQLAlchemyError:
        if not in_transaction(db):
            db.rollback()
        logger.warning(
            "failed to update last used timestamp", extra={"pat_id": str(pat_id)}, exc_info=True
        )


def list_tokens(
    db: Session, user_id: UUID, limit: int | None = None, offset: int | None = None
) -> tuple[list[models.PersonalAccessToken], int]:
    limit, offset = normalize_paging(limit, offset)
    query = db.query(models.PersonalAccessToken).filter(
        models.PersonalAccessToken.user_id == user_id
    )
    total = query.count()
    rows = (
        query.order_by(models.PersonalAccessToken.created_at.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return rows, total


def get_token(db: Session, pat_id: UUID, user_id: UUID) -> models.PersonalAccessToken:
    pat = db.get(models.PersonalAccessToken, pat_id)
    if pat is None:
        raise NotFound("personal access token not found")
    if pat.user_id != user_id:
        raise Unauthorized("token belongs to another user")
    return pat


def revoke_token(db: Session, pat_id: UUID, user_id: UUID) -> None:
    with transaction(db):
        pat = get_token(db, pat_id, user_id)
        db.delete(pat)
        db.flush()
    logger.info("revoked personal access token", extra={"pat_id": str(pat_id)})


def cleanup_expired(db: Session) -> int:
    """Delete every token whose expiry has passed and return how many were removed."""

    with transaction(db):
        count = (
            db.query(models.PersonalAccessToken)
            .filter(
                models.PersonalAccessToken.expires_at.isnot(None),
                models.PersonalAccessToken.expires_at <= _utcnow(),
            )
            .delete(synchronize_session=False)
        )
    logger.info("removed expired personal access tokens", extra={"count": count})
    return count
