import os
os.environ["TESTING"] = "1"
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["PAT_HASH_COST"] = "4"
os.environ["SECRET_KEY"] = "test-secret-key-for-signing-access-tokens"
os.environ.pop("ELASTICSEARCH_URL", None)
import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from reqhub.main import app
from reqhub.database import Base, engine, get_db
from reqhub import models, schemas
from reqhub.services import acceptance_criteria, config, epics, requirements, tokens, user_stories

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base.metadata.drop_all(bind=engine)
Base.metadata.create_all(bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def clean_tables():
    yield
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


def make_user(db, role: str = models.ROLE_USER, username: str | None = None) -> models.User:
    """
    purpose: insert a user with the given role for service and API tests
    outputs: persisted models.User
    """

    name = username or f"user-{uuid.uuid4().hex[:8]}"
    user = models.User(username=name, email=f"{name}@example.com", role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def auth_headers(db, user: models.User, name: str | None = None) -> dict[str, str]:
    full_token, _ = tokens.create_token(
        db, user, schemas.PATCreate(name=name or f"test-{uuid.uuid4().hex[:6]}")
    )
    return {"Authorization": f"Bearer {full_token}"}


@pytest.fixture
def seeded(db):
    config.seed_defaults(db)
    return db


@pytest.fixture
def admin(db):
    return make_user(db, models.ROLE_ADMINISTRATOR, "admin")


@pytest.fixture
def editor(db):
    return make_user(db, models.ROLE_USER, "editor")


@pytest.fixture
def commenter(db):
    return make_user(db, models.ROLE_COMMENTER, "commenter")


@pytest.fixture
def admin_headers(db, admin):
    return auth_headers(db, admin)


@pytest.fixture
def editor_headers(db, editor):
    return auth_headers(db, editor)


@pytest.fixture
def commenter_headers(db, commenter):
    return auth_headers(db, commenter)


@pytest.fixture
def functional_type(seeded):
    return seeded.query(models.RequirementType).filter_by(name="Functional").one()


@pytest.fixture
def depends_on_type(seeded):
    return seeded.query(models.RelationshipType).filter_by(name="depends_on").one()


STORY_DESCRIPTION = "As a reviewer, I want to see pending changes, so that I can approve them"


def new_epic(db, user, title="Checkout", description=None, priority=2):
    return epics.create_epic(
        db, user.id, schemas.EpicCreate(title=title, description=description, priority=priority)
    )


def new_story(db, user, epic, title="Review queue", description=STORY_DESCRIPTION, priority=3):
    return user_stories.create_user_story(
        db,
        user.id,
        schemas.UserStoryCreate(
            epic_id=epic.id, title=title, description=description, priority=priority
        ),
    )


def new_criteria(db, user, story, description="Pending changes are listed newest first"):
    return acceptance_criteria.create_acceptance_criteria(
        db,
        user.id,
        schemas.AcceptanceCriteriaCreate(user_story_id=story.id, description=description),
    )


def new_requirement(db, user, story, type_, criteria=None, title="List endpoint", priority=2):
    return requirements.create_requirement(
        db,
        user.id,
        schemas.RequirementCreate(
            user_story_id=story.id,
            acceptance_criteria_id=criteria.id if criteria else None,
            type_id=type_.id,
            title=title,
            priority=priority,
        ),
    )
