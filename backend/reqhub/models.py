import uuid
import sqlalchemy as sa
from sqlalchemy import (
    Column,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    JSON,
    Integer,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .database import Base


def _utcnow():
    return datetime.now(timezone.utc)


ROLE_ADMINISTRATOR = "Administrator"
ROLE_USER = "User"
ROLE_COMMENTER = "Commenter"
ROLES = (ROLE_ADMINISTRATOR, ROLE_USER, ROLE_COMMENTER)

ENTITY_EPIC = "epic"
ENTITY_USER_STORY = "user_story"
ENTITY_ACCEPTANCE_CRITERIA = "acceptance_criteria"
ENTITY_REQUIREMENT = "requirement"
ENTITY_STEERING_DOCUMENT = "steering_document"
COMMENTABLE_ENTITIES = (
    ENTITY_EPIC,
    ENTITY_USER_STORY,
    ENTITY_ACCEPTANCE_CRITERIA,
    ENTITY_REQUIREMENT,
)
STATUS_ENTITIES = (ENTITY_EPIC, ENTITY_USER_STORY, ENTITY_REQUIREMENT)

PRIORITY_CRITICAL = 1
PRIORITY_HIGH = 2
PRIORITY_MEDIUM = 3
PRIORITY_LOW = 4
PRIORITY_LABELS = {
    PRIORITY_CRITICAL: "Critical",
    PRIORITY_HIGH: "High",
    PRIORITY_MEDIUM: "Medium",
    PRIORITY_LOW: "Low",
}


class User(Base):
    __tablename__ = "users"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    username = Column(String(100), unique=True, nullable=False)
    email = Column(String, unique=True, nullable=False)
    role = Column(String, nullable=False, default=ROLE_USER)
    # null for accounts that only authenticate with access tokens
    password_hash = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    @property
    def is_administrator(self) -> bool:
        return self.role == ROLE_ADMINISTRATOR

    @property
    def can_edit(self) -> bool:
        return self.role in (ROLE_ADMINISTRATOR, ROLE_USER)

    @property
    def can_read(self) -> bool:
        return self.role in ROLES

    @property
    def can_comment(self) -> bool:
        return self.role in ROLES

    @property
    def can_manage_config(self) -> bool:
        return self.role == ROLE_ADMINISTRATOR


class ReferenceCounter(Base):
    __tablename__ = "reference_counters"
    prefix = Column(String(8), primary_key=True)
    last_value = Column(Integer, nullable=False, default=0)


epic_steering_documents = sa.Table(
    "epic_steering_documents",
    Base.metadata,
    Column("epic_id", UUID(as_uuid=True), ForeignKey("epics.id"), primary_key=True),
    Column(
        "steering_document_id",
        UUID(as_uuid=True),
        ForeignKey("steering_documents.id"),
        primary_key=True,
    ),
    Column("created_at", DateTime(timezone=True), default=_utcnow),
)


class Epic(Base):
    __tablename__ = "epics"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    reference_id = Column(String(20), unique=True, nullable=False)
    creator_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    assignee_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    priority = Column(Integer, nullable=False)
    status = Column(String, nullable=False, default="Backlog")
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    creator = relationship("User", foreign_keys=[creator_id])
    assignee = relationship("User", foreign_keys=[assignee_id])
    user_stories = relationship(
        "UserStory", viewonly=True, order_by="UserStory.created_at"
    )
    steering_documents = relationship(
        "SteeringDocument", secondary=epic_steering_documents, back_populates="epics"
    )


class UserStory(Base):
    __tablename__ = "user_stories"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    reference_id = Column(String(20), unique=True, nullable=False)
    epic_id = Column(UUID(as_uuid=True), ForeignKey("epics.id"), nullable=False)
    creator_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    assignee_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    priority = Column(Integer, nullable=False)
    status = Column(String, nullable=False, default="Backlog")
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    epic = relationship("Epic")
    creator = relationship("User", foreign_keys=[creator_id])
    assignee = relationship("User", foreign_keys=[assignee_id])
    acceptance_criteria = relationship(
        "AcceptanceCriteria", viewonly=True, order_by="AcceptanceCriteria.created_at"
    )
    requirements = relationship(
        "Requirement", viewonly=True, order_by="Requirement.created_at"
    )


class AcceptanceCriteria(Base):
    __tablename__ = "acceptance_criteria"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    reference_id = Column(String(20), unique=True, nullable=False)
    user_story_id = Column(UUID(as_uuid=True), ForeignKey("user_stories.id"), nullable=False)
    author_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    description = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    user_story = relationship("UserStory")
    author = relationship("User")

    @property
    def title(self) -> str:
        return f"AC: {self.description[:50]}"


class RequirementType(Base):
    __tablename__ = "requirement_types"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, unique=True, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class RelationshipType(Base):
    __tablename__ = "relationship_types"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, unique=True, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class Requirement(Base):
    __tablename__ = "requirements"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    reference_id = Column(String(20), unique=True, nullable=False)
    user_story_id = Column(UUID(as_uuid=True), ForeignKey("user_stories.id"), nullable=False)
    acceptance_criteria_id = Column(
        UUID(as_uuid=True), ForeignKey("acceptance_criteria.id"), nullable=True
    )
    creator_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    assignee_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    priority = Column(Integer, nullable=False)
    status = Column(String, nullable=False, default="Draft")
    type_id = Column(UUID(as_uuid=True), ForeignKey("requirement_types.id"), nullable=False)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    user_story = relationship("UserStory")
    acceptance_criteria = relationship("AcceptanceCriteria")
    creator = relationship("User", foreign_keys=[creator_id])
    assignee = relationship("User", foreign_keys=[assignee_id])
    type = relationship("RequirementType")


class RequirementRelationship(Base):
    __tablename__ = "requirement_relationships"
    __table_args__ = (
        sa.UniqueConstraint(
            "source_requirement_id", "target_requirement_id", "relationship_type_id"
        ),
    )
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    source_requirement_id = Column(
        UUID(as_uuid=True), ForeignKey("requirements.id"), nullable=False
    )
    target_requirement_id = Column(
        UUID(as_uuid=True), ForeignKey("requirements.id"), nullable=False
    )
    relationship_type_id = Column(
        UUID(as_uuid=True), ForeignKey("relationship_types.id"), nullable=False
    )
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    source_requirement = relationship("Requirement", foreign_keys=[source_requirement_id])
    target_requirement = relationship("Requirement", foreign_keys=[target_requirement_id])
    relationship_type = relationship("RelationshipType")

    @property
    def reference_id(self) -> str:
        return f"REL-{str(self.id)[:8]}"


class Comment(Base):
    __tablename__ = "comments"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    entity_type = Column(String, nullable=False, index=True)
    entity_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    parent_comment_id = Column(UUID(as_uuid=True), ForeignKey("comments.id"), nullable=True)
    author_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    content = Column(Text, nullable=False)
    is_resolved = Column(Boolean, nullable=False, default=False)
    linked_text = Column(Text, nullable=True)
    text_position_start = Column(Integer, nullable=True)
    text_position_end = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    author = relationship("User")

    @property
    def is_inline(self) -> bool:
        return (
            self.linked_text is not None
            and self.text_position_start is not None
            and self.text_position_end is not None
        )

    @property
    def is_reply(self) -> bool:
        return self.parent_comment_id is not None

    @property
    def depth(self) -> int:
        return 1 if self.is_reply else 0


class StatusModel(Base):
    __tablename__ = "status_models"
    __table_args__ = (sa.UniqueConstraint("entity_type", "name"),)
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    entity_type = Column(String, nullable=False)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    statuses = relationship(
        "Status",
        back_populates="status_model",
        cascade="all, delete-orphan",
        order_by="Status.order",
    )
    transitions = relationship(
        "StatusTransition",
        back_populates="status_model",
        cascade="all, delete-orphan",
    )


class Status(Base):
    __tablename__ = "statuses"
    __table_args__ = (sa.UniqueConstraint("status_model_id", "name"),)
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    status_model_id = Column(UUID(as_uuid=True), ForeignKey("status_models.id"), nullable=False)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    color = Column(String(7), nullable=True)
    is_initial = Column(Boolean, nullable=False, default=False)
    is_final = Column(Boolean, nullable=False, default=False)
    order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    status_model = relationship("StatusModel", back_populates="statuses")


class StatusTransition(Base):
    __tablename__ = "status_transitions"
    __table_args__ = (sa.UniqueConstraint("status_model_id", "from_status_id", "to_status_id"),)
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    status_model_id = Column(UUID(as_uuid=True), ForeignKey("status_models.id"), nullable=False)
    from_status_id = Column(UUID(as_uuid=True), ForeignKey("statuses.id"), nullable=False)
    to_status_id = Column(UUID(as_uuid=True), ForeignKey("statuses.id"), nullable=False)
    name = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    status_model = relationship("StatusModel", back_populates="transitions")
    from_status = relationship("Status", foreign_keys=[from_status_id])
    to_status = relationship("Status", foreign_keys=[to_status_id])


class PersonalAccessToken(Base):
    __tablename__ = "personal_access_tokens"
    __table_args__ = (sa.UniqueConstraint("user_id", "name"),)
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    name = Column(String(100), nullable=False)
    token_hash = Column(String, nullable=False)
    prefix = Column(String(20), nullable=False, index=True)
    scopes = Column(JSON, default=list)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    last_used_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    user = relationship("User")


class RefreshToken(Base):
    __tablename__ = "refresh_tokens"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    token_hash = Column(String, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    last_used_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    user = relationship("User")


class SteeringDocument(Base):
    __tablename__ = "steering_documents"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    reference_id = Column(String(20), unique=True, nullable=False)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    creator_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    creator = relationship("User")
    epics = relationship(
        "Epic", secondary=epic_steering_documents, back_populates="steering_documents"
    )


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    action = Column(String, nullable=False)
    target_type = Column(String)
    target_id = Column(UUID(as_uuid=True))
    reference_id = Column(String(20))
    transaction_id = Column(String, index=True)
    details = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
