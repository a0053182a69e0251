import uuid

import pytest

from reqhub import models, schemas
from reqhub.errors import InvariantViolation, NotFound, ValidationError
from reqhub.services import acceptance_criteria, epics, requirements, user_stories
from conftest import (
    STORY_DESCRIPTION,
    make_user,
    new_criteria,
    new_epic,
    new_requirement,
    new_story,
)


def test_create_epic_defaults(db):
    user = make_user(db)
    epic = new_epic(db, user)
    assert epic.reference_id == "EP-001"
    assert epic.status == "Backlog"
    assert epic.creator_id == user.id
    assert epic.assignee_id == user.id


@pytest.mark.parametrize("priority", [0, 5, -1])
def test_priority_must_be_one_to_four(db, priority):
    user = make_user(db)
    with pytest.raises(ValidationError):
        new_epic(db, user, priority=priority)


def test_epic_requires_existing_assignee(db):
    user = make_user(db)
    with pytest.raises(NotFound):
        epics.create_epic(
            db,
            user.id,
            schemas.EpicCreate(title="Ghost", priority=1, assignee_id=uuid.uuid4()),
        )


def test_list_epics_filters_and_orders(db):
    user = make_user(db)
    other = make_user(db)
    new_epic(db, user, title="Low", priority=4)
    new_epic(db, user, title="Critical", priority=1)
    epics.create_epic(db, other.id, schemas.EpicCreate(title="Theirs", priority=2))

    rows, total, limit, offset = epics.list_epics(db, creator_id=user.id, order_by="priority ASC")
    assert total == 2
    assert [e.title for e in rows] == ["Critical", "Low"]
    assert (limit, offset) == (50, 0)

    rows, total, _, _ = epics.list_epics(db, limit=1, offset=1, order_by="title asc")
    assert total == 3
    assert [e.title for e in rows] == ["Low"]

    with pytest.raises(ValidationError):
        epics.list_epics(db, order_by="password DESC")


@pytest.mark.parametrize(
    "description",
    [
        "Reviewers want a queue",
        "As a reviewer, I want a queue",
        "I want a queue so that I can approve",
    ],
)
def test_user_story_template_is_enforced(db, description):
    user = make_user(db)
    epic = new_epic(db, user)
    with pytest.raises(ValidationError):
        new_story(db, user, epic, description=description)


def test_user_story_template_is_case_insensitive(db):
    user = make_user(db)
    epic = new_epic(db, user)
    story = new_story(db, user, epic, description="AS an admin, I WANT logs, SO THAT I can audit")
    assert story.reference_id == "US-001"
    empty = new_story(db, user, epic, description=None)
    assert empty.description is None
    with pytest.raises(ValidationError):
        user_stories.update_user_story(
            db, story.id, schemas.UserStoryUpdate(description="just text")
        )


def test_user_story_requires_epic(db):
    user = make_user(db)
    with pytest.raises(NotFound):
        user_stories.create_user_story(
            db,
            user.id,
            schemas.UserStoryCreate(
                epic_id=uuid.uuid4(), title="Orphan", description=STORY_DESCRIPTION, priority=2
            ),
        )


def test_acceptance_criteria_helpers(db):
    user = make_user(db)
    epic = new_epic(db, user)
    story = new_story(db, user, epic)
    with pytest.raises(InvariantViolation):
        acceptance_criteria.validate_user_story_has_acceptance_criteria(db, story.id)
    criteria = new_criteria(db, user, story)
    assert criteria.reference_id == "AC-001"
    assert criteria.title.startswith("AC: ")
    assert acceptance_criteria.count_by_user_story(db, story.id) == 1
    acceptance_criteria.validate_user_story_has_acceptance_criteria(db, story.id)


def test_requirement_criteria_must_share_story(db, functional_type):
    user = make_user(db)
    epic = new_epic(db, user)
    story = new_story(db, user, epic)
    other_story = new_story(db, user, epic, title="Other")
    foreign = new_criteria(db, user, other_story)
    with pytest.raises(ValidationError):
        new_requirement(db, user, story, functional_type, criteria=foreign)

    requirement = new_requirement(db, user, story, functional_type)
    assert requirement.status == "Draft"
    with pytest.raises(ValidationError):
        requirements.update_requirement(
            db, requirement.id, schemas.RequirementUpdate(acceptance_criteria_id=foreign.id)
        )
    own = new_criteria(db, user, story)
    requirements.update_requirement(
        db, requirement.id, schemas.RequirementUpdate(acceptance_criteria_id=own.id)
    )
    assert [r.id for r in requirements.list_by_acceptance_criteria(db, own.id)] == [requirement.id]


def test_relationship_rules(db, functional_type, depends_on_type):
    user = make_user(db)
    epic = new_epic(db, user)
    story = new_story(db, user, epic)
    first = new_requirement(db, user, story, functional_type, title="First")
    second = new_requirement(db, user, story, functional_type, title="Second")
    payload = schemas.RelationshipCreate(
        source_requirement_id=first.id,
        target_requirement_id=second.id,
        relationship_type_id=depends_on_type.id,
    )
    relationship = requirements.create_relationship(db, user.id, payload)
    assert relationship.reference_id.startswith("REL-")
    with pytest.raises(ValidationError):
        requirements.create_relationship(db, user.id, payload)
    with pytest.raises(ValidationError):
        requirements.create_relationship(
            db,
            user.id,
            schemas.RelationshipCreate(
                source_requirement_id=first.id,
                target_requirement_id=first.id,
                relationship_type_id=depends_on_type.id,
            ),
        )
    assert [r.id for r in requirements.list_relationships(db, second.id)] == [relationship.id]
    requirements.delete_relationship(db, relationship.id)
    assert requirements.list_relationships(db, first.id) == []


def test_assign_and_unassign(db):
    user = make_user(db)
    other = make_user(db)
    epic = new_epic(db, user)
    assert epics.assign_epic(db, epic.id, other.id).assignee_id == other.id
    assert epics.assign_epic(db, epic.id, None).assignee_id is None
    with pytest.raises(NotFound):
        epics.assign_epic(db, epic.id, uuid.uuid4())


def test_entity_api(client, db, editor, editor_headers, commenter_headers, functional_type):
    resp = client.post(
        "/api/epics", json={"title": "Payments", "priority": 1}, headers=editor_headers
    )
    assert resp.status_code == 201
    epic = resp.json()
    assert epic["reference_id"] == "EP-001"
    assert epic["created_at"].endswith("Z")

    resp = client.post(
        "/api/epics", json={"title": "Nope", "priority": 1}, headers=commenter_headers
    )
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "UNAUTHORIZED"

    resp = client.post(
        "/api/user-stories",
        json={
            "epic_id": epic["id"],
            "title": "Pay by card",
            "description": STORY_DESCRIPTION,
            "priority": 2,
        },
        headers=editor_headers,
    )
    assert resp.status_code == 201
    story = resp.json()

    resp = client.post(
        "/api/user-stories",
        json={"epic_id": epic["id"], "title": "Bad", "description": "nope", "priority": 2},
        headers=editor_headers,
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    resp = client.post(
        "/api/acceptance-criteria",
        json={"user_story_id": story["id"], "description": "Card form validates expiry"},
        headers=editor_headers,
    )
    assert resp.status_code == 201
    criteria = resp.json()

    resp = client.post(
        "/api/requirements",
        json={
            "user_story_id": story["id"],
            "acceptance_criteria_id": criteria["id"],
            "type_id": str(functional_type.id),
            "title": "Validate expiry",
            "priority": 2,
        },
        headers=editor_headers,
    )
    assert resp.status_code == 201
    requirement = resp.json()

    by_ref = client.get("/api/epics/ep-001", headers=commenter_headers)
    assert by_ref.status_code == 200
    assert by_ref.json()["id"] == epic["id"]

    stories = client.get(f"/api/epics/{epic['id']}/user-stories", headers=editor_headers).json()
    assert [s["id"] for s in stories] == [story["id"]]

    linked = client.get(
        f"/api/acceptance-criteria/{criteria['reference_id']}/requirements", headers=editor_headers
    ).json()
    assert [r["id"] for r in linked] == [requirement["id"]]

    resp = client.patch(
        f"/api/requirements/{requirement['id']}/status",
        json={"status": "Active"},
        headers=editor_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "Active"

    resp = client.put(
        f"/api/epics/{epic['id']}", json={"title": "Payments v2"}, headers=editor_headers
    )
    assert resp.json()["title"] == "Payments v2"

    listing = client.get(
        "/api/requirements", params={"status": "Active"}, headers=editor_headers
    ).json()
    assert listing["total_count"] == 1

    missing = client.get("/api/epics/EP-999", headers=editor_headers)
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "NOT_FOUND"
