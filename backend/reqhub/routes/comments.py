from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from uuid import UUID

from ..database import get_db
from ..auth import get_current_user, require_commenter, require_editor
from ..errors import Unauthorized, ValidationError
from .. import models, schemas
from ..services import comments
from ..services.common import resolve_identifier

router = APIRouter(prefix="/api/comments", tags=["comments"])
entity_router = APIRouter(prefix="/api", tags=["comments"])

COLLECTIONS = {
    "epics": (models.ENTITY_EPIC, "epic"),
    "user-stories": (models.ENTITY_USER_STORY, "user story"),
    "acceptance-criteria": (models.ENTITY_ACCEPTANCE_CRITERIA, "acceptance criteria"),
    "requirements": (models.ENTITY_REQUIREMENT, "requirement"),
}


def _entity(db: Session, collection: str, identifier: str) -> tuple[str, UUID]:
    if collection not in COLLECTIONS:
        raise ValidationError(f"comments are not supported on {collection}")
    entity_type, label = COLLECTIONS[collection]
    return entity_type, resolve_identifier(db, entity_type, identifier, label).id


def _check_author(user: models.User, comment: models.Comment) -> None:
    if comment.author_id != user.id and not user.is_administrator:
        raise Unauthorized("only the author or an administrator can change this comment")


@entity_router.post(
    "/{collection}/{identifier}/comments", response_model=schemas.CommentOut, status_code=201
)
async def create_comment(
    collection: str,
    identifier: str,
    payload: schemas.CommentCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_commenter(user)
    entity_type, entity_id = _entity(db, collection, identifier)
    comment = comments.create_comment(db, entity_type, entity_id, user.id, payload)
    return comments.to_out(comment)


@entity_router.get("/{collection}/{identifier}/comments", response_model=list[schemas.CommentOut])
async def list_comments(
    collection: str,
    identifier: str,
    threaded: bool = True,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    entity_type, entity_id = _entity(db, collection, identifier)
    if threaded:
        return comments.get_threaded(db, entity_type, entity_id)
    return [comments.to_out(c) for c in comments.list_by_entity(db, entity_type, entity_id)]


@entity_router.get(
    "/{collection}/{identifier}/comments/inline", response_model=list[schemas.CommentOut]
)
async def list_inline_comments(
    collection: str,
    identifier: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    entity_type, entity_id = _entity(db, collection, identifier)
    return [comments.to_out(c) for c in comments.get_inline(db, entity_type, entity_id)]


@router.get("", response_model=list[schemas.CommentOut])
async def list_by_status(
    is_resolved: bool = False,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return [comments.to_out(c) for c in comments.list_by_status(db, is_resolved)]


@router.get("/{comment_id}", response_model=schemas.CommentOut)
async def get_comment(
    comment_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return comments.to_out(comments.get_comment(db, comment_id))


@router.put("/{comment_id}", response_model=schemas.CommentOut)
async def update_comment(
    comment_id: UUID,
    payload: schemas.CommentUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    _check_author(user, comments.get_comment(db, comment_id))
    return comments.to_out(comments.update_comment(db, comment_id, payload))


@router.delete("/{comment_id}", status_code=204)
async def delete_comment(
    comment_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    _check_author(user, comments.get_comment(db, comment_id))
    comments.delete_comment(db, comment_id)


@router.post("/{comment_id}/resolve", response_model=schemas.CommentOut)
async def resolve_comment(
    comment_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_editor(user)
    return comments.to_out(comments.resolve_comment(db, comment_id))


@router.post("/{comment_id}/unresolve", response_model=schemas.CommentOut)
async def unresolve_comment(
    comment_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_editor(user)
    return comments.to_out(comments.unresolve_comment(db, comment_id))
