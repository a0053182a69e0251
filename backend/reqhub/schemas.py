from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Generic, Literal, Optional, TypeVar
from pydantic import BaseModel, ConfigDict, EmailStr, Field, PlainSerializer
from uuid import UUID


def format_timestamp(value: datetime) -> str:
    """Render ``value`` as ``2006-01-02T15:04:05Z07:00`` (``Z`` for UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = value.strftime("%Y-%m-%dT%H:%M:%S")
    offset = value.utcoffset()
    if not offset:
        return text + "Z"
    seconds = int(offset.total_seconds())
    sign = "+" if seconds >= 0 else "-"
    seconds = abs(seconds)
    return f"{text}{sign}{seconds // 3600:02d}:{(seconds % 3600) // 60:02d}"


Timestamp = Annotated[datetime, PlainSerializer(format_timestamp, return_type=str)]

EntityType = Literal["epic", "user_story", "acceptance_criteria", "requirement"]
StatusEntityType = Literal["epic", "user_story", "requirement"]
Role = Literal["Administrator", "User", "Commenter"]

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    data: list[T]
    total_count: int
    limit: int
    offset: int


def page_of(out_model, rows, total: int, limit: int, offset: int) -> Page:
    return Page[out_model](
        data=[out_model.model_validate(row) for row in rows],
        total_count=total,
        limit=limit,
        offset=offset,
    )


class UserCreate(BaseModel):
    username: str = Field(min_length=3, max_length=100)
    email: EmailStr
    role: Role = "User"
    password: Optional[str] = None


class UserUpdate(BaseModel):
    email: Optional[EmailStr] = None
    role: Optional[Role] = None


class UserOut(BaseModel):
    id: UUID
    username: str
    email: str
    role: str
    created_at: Timestamp
    updated_at: Timestamp
    model_config = ConfigDict(from_attributes=True)


class EpicCreate(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    description: Optional[str] = Field(default=None, max_length=50000)
    priority: int
    assignee_id: Optional[UUID] = None


class EpicUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    description: Optional[str] = Field(default=None, max_length=50000)
    priority: Optional[int] = None
    status: Optional[str] = None
    assignee_id: Optional[UUID] = None


class EpicOut(BaseModel):
    id: UUID
    reference_id: str
    title: str
    description: Optional[str] = None
    priority: int
    status: str
    creator_id: UUID
    assignee_id: Optional[UUID] = None
    created_at: Timestamp
    updated_at: Timestamp
    model_config = ConfigDict(from_attributes=True)


class StatusChange(BaseModel):
    status: str


class AssigneeChange(BaseModel):
    assignee_id: Optional[UUID] = None


class UserStoryCreate(BaseModel):
    epic_id: UUID
    title: str = Field(min_length=1, max_length=500)
    description: Optional[str] = Field(default=None, max_length=50000)
    priority: int
    assignee_id: Optional[UUID] = None


class UserStoryUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    description: Optional[str] = Field(default=None, max_length=50000)
    priority: Optional[int] = None
    status: Optional[str] = None
    assignee_id: Optional[UUID] = None


class UserStoryOut(BaseModel):
    id: UUID
    reference_id: str
    epic_id: UUID
    title: str
    description: Optional[str] = None
    priority: int
    status: str
    creator_id: UUID
    assignee_id: Optional[UUID] = None
    created_at: Timestamp
    updated_at: Timestamp
    model_config = ConfigDict(from_attributes=True)


class AcceptanceCriteriaCreate(BaseModel):
    user_story_id: UUID
    description: str = Field(min_length=1, max_length=50000)


class AcceptanceCriteriaUpdate(BaseModel):
    description: str = Field(min_length=1, max_length=50000)


class AcceptanceCriteriaOut(BaseModel):
    id: UUID
    reference_id: str
    user_story_id: UUID
    author_id: UUID
    description: str
    created_at: Timestamp
    updated_at: Timestamp
    model_config = ConfigDict(from_attributes=True)


class RequirementCreate(BaseModel):
    user_story_id: UUID
    acceptance_criteria_id: Optional[UUID] = None
    type_id: UUID
    title: str = Field(min_length=1, max_length=500)
    description: Optional[str] = Field(default=None, max_length=50000)
    priority: int
    assignee_id: Optional[UUID] = None


class RequirementUpdate(BaseModel):
    acceptance_criteria_id: Optional[UUID] = None
    type_id: Optional[UUID] = None
    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    description: Optional[str] = Field(default=None, max_length=50000)
    priority: Optional[int] = None
    status: Optional[str] = None
    assignee_id: Optional[UUID] = None


class RequirementOut(BaseModel):
    id: UUID
    reference_id: str
    user_story_id: UUID
    acceptance_criteria_id: Optional[UUID] = None
    type_id: UUID
    title: str
    description: Optional[str] = None
    priority: int
    status: str
    creator_id: UUID
    assignee_id: Optional[UUID] = None
    created_at: Timestamp
    updated_at: Timestamp
    model_config = ConfigDict(from_attributes=True)


class RelationshipCreate(BaseModel):
    source_requirement_id: UUID
    target_requirement_id: UUID
    relationship_type_id: UUID


class RelationshipOut(BaseModel):
    id: UUID
    reference_id: str
    source_requirement_id: UUID
    target_requirement_id: UUID
    relationship_type_id: UUID
    created_by: UUID
    created_at: Timestamp
    model_config = ConfigDict(from_attributes=True)


class TypeCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None


class TypeUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None


class TypeOut(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    created_at: Timestamp
    updated_at: Timestamp
    model_config = ConfigDict(from_attributes=True)


class StatusCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")
    is_initial: bool = False
    is_final: bool = False
    order: int = 0


class StatusUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")
    is_initial: Optional[bool] = None
    is_final: Optional[bool] = None
    order: Optional[int] = None


class StatusOut(BaseModel):
    id: UUID
    status_model_id: UUID
    name: str
    description: Optional[str] = None
    color: Optional[str] = None
    is_initial: bool
    is_final: bool
    order: int
    model_config = ConfigDict(from_attributes=True)


class TransitionCreate(BaseModel):
    from_status_id: UUID
    to_status_id: UUID
    name: Optional[str] = None
    description: Optional[str] = None


class TransitionOut(BaseModel):
    id: UUID
    status_model_id: UUID
    from_status_id: UUID
    to_status_id: UUID
    name: Optional[str] = None
    description: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class StatusModelCreate(BaseModel):
    entity_type: StatusEntityType
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    is_default: bool = False


class StatusModelUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    is_default: Optional[bool] = None


class StatusModelOut(BaseModel):
    id: UUID
    entity_type: str
    name: str
    description: Optional[str] = None
    is_default: bool
    statuses: list[StatusOut] = []
    transitions: list[TransitionOut] = []
    created_at: Timestamp
    updated_at: Timestamp
    model_config = ConfigDict(from_attributes=True)


class TransitionCheck(BaseModel):
    entity_type: StatusEntityType
    from_status: str
    to_status: str


class CommentCreate(BaseModel):
    content: str = Field(min_length=1, max_length=10000)
    parent_comment_id: Optional[UUID] = None
    linked_text: Optional[str] = None
    text_position_start: Optional[int] = None
    text_position_end: Optional[int] = None


class CommentUpdate(BaseModel):
    content: str = Field(min_length=1, max_length=10000)


class CommentOut(BaseModel):
    id: UUID
    entity_type: str
    entity_id: UUID
    parent_comment_id: Optional[UUID] = None
    author_id: UUID
    content: str
    is_resolved: bool
    linked_text: Optional[str] = None
    text_position_start: Optional[int] = None
    text_position_end: Optional[int] = None
    is_inline: bool
    is_reply: bool
    depth: int
    replies: list[CommentOut] = []
    created_at: Timestamp
    updated_at: Timestamp
    model_config = ConfigDict(from_attributes=True)


class PATCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    expires_at: Optional[datetime] = None
    scopes: Optional[list[str]] = None


class PATOut(BaseModel):
    id: UUID
    user_id: UUID
    name: str
    prefix: str
    scopes: list[str] = []
    expires_at: Optional[Timestamp] = None
    last_used_at: Optional[Timestamp] = None
    created_at: Timestamp
    model_config = ConfigDict(from_attributes=True)


class PATCreated(BaseModel):
    token: str
    pat: PATOut


class LoginRequest(BaseModel):
    username: str
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: Timestamp
    refresh_token: str
    user: UserOut


class DependencyDetail(BaseModel):
    entity_type: str
    entity_id: UUID
    reference_id: str
    title: str
    reason: str


class CascadeDeletePreview(BaseModel):
    entity_type: str
    entity_id: UUID
    reference_id: str
    title: str


class DependencyInfo(BaseModel):
    can_delete: bool
    dependencies: list[DependencyDetail] = []
    cascade_delete_count: int = 0
    cascade_delete_entities: list[CascadeDeletePreview] = []
    requires_confirmation: bool = False


class CascadeDeletedEntity(BaseModel):
    entity_type: str
    entity_id: UUID
    reference_id: str


class DeletionResult(BaseModel):
    entity_type: str
    entity_id: UUID
    reference_id: str
    deleted_at: Timestamp
    deleted_by: UUID
    cascade_deleted: list[CascadeDeletedEntity] = []
    audit_log_id: UUID
    transaction_id: str


class RequirementNode(RequirementOut):
    relationships: list[RelationshipOut] = []


class UserStoryNode(UserStoryOut):
    acceptance_criteria: list[AcceptanceCriteriaOut] = []
    requirements: list[RequirementNode] = []


class EpicNode(EpicOut):
    user_stories: list[UserStoryNode] = []


class PathElement(BaseModel):
    id: UUID
    reference_id: str
    type: str
    title: str


class ResolvedReference(BaseModel):
    entity_type: str
    id: UUID
    reference_id: str
    title: str


class SearchOptions(BaseModel):
    query: str = ""
    entity_types: list[str] = []
    creator_id: Optional[UUID] = None
    assignee_id: Optional[UUID] = None
    priority: Optional[int] = None
    status: Optional[str] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    sort_by: Optional[str] = None
    sort_order: str = "desc"
    limit: int = 50
    offset: int = 0


class SearchResult(BaseModel):
    id: UUID
    reference_id: str
    type: str
    title: str
    description: Optional[str] = None
    priority: Optional[int] = None
    status: Optional[str] = None
    created_at: Timestamp
    relevance: float = 0.0


class SearchResponse(BaseModel):
    results: list[SearchResult]
    total_count: int
    limit: int
    offset: int
    query: str = ""


class Suggestion(BaseModel):
    reference_id: str
    type: str
    title: str


class SteeringDocumentCreate(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    description: Optional[str] = Field(default=None, max_length=50000)


class SteeringDocumentUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    description: Optional[str] = Field(default=None, max_length=50000)


class SteeringDocumentOut(BaseModel):
    id: UUID
    reference_id: str
    title: str
    description: Optional[str] = None
    creator_id: UUID
    created_at: Timestamp
    updated_at: Timestamp
    model_config = ConfigDict(from_attributes=True)


class AuditLogOut(BaseModel):
    id: UUID
    user_id: UUID
    action: str
    target_type: Optional[str] = None
    target_id: Optional[UUID] = None
    reference_id: Optional[str] = None
    transaction_id: Optional[str] = None
    details: dict[str, Any] = {}
    created_at: Timestamp
    model_config = ConfigDict(from_attributes=True)


class AuditReportItem(BaseModel):
    action: str
    entity_type: Optional[str] = None
    count: int
