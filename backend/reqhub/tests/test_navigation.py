import uuid

import pytest

from reqhub import models, schemas
from reqhub.errors import NotFound, ValidationError
from reqhub.services import navigation, requirements
from conftest import make_user, new_criteria, new_epic, new_requirement, new_story


@pytest.fixture
def tree(db, functional_type, depends_on_type):
    user = make_user(db)
    epic = new_epic(db, user)
    story = new_story(db, user, epic)
    criteria = new_criteria(db, user, story)
    first = new_requirement(db, user, story, functional_type, criteria=criteria, title="First")
    second = new_requirement(db, user, story, functional_type, title="Second")
    requirements.create_relationship(
        db,
        user.id,
        schemas.RelationshipCreate(
            source_requirement_id=first.id,
            target_requirement_id=second.id,
            relationship_type_id=depends_on_type.id,
        ),
    )
    return {"epic": epic, "story": story, "criteria": criteria, "requirement": first}


def test_hierarchy_without_expand_has_empty_children(db, tree):
    page = navigation.get_hierarchy(db)
    assert page.total_count == 1
    node = page.data[0]
    assert node.id == tree["epic"].id
    assert node.user_stories == []


def test_hierarchy_expands_requested_levels(db, tree):
    page = navigation.get_hierarchy(db, expand="user_stories,requirements")
    story = page.data[0].user_stories[0]
    assert story.id == tree["story"].id
    assert story.acceptance_criteria == []
    assert [r.title for r in story.requirements] == ["First", "Second"]
    assert story.requirements[0].relationships == []

    page = navigation.get_hierarchy(
        db, expand="user_stories,acceptance_criteria,requirements,relationships"
    )
    story = page.data[0].user_stories[0]
    assert [ac.id for ac in story.acceptance_criteria] == [tree["criteria"].id]
    assert len(story.requirements[0].relationships) == 1


def test_invalid_expand_is_rejected(db):
    with pytest.raises(ValidationError):
        navigation.get_hierarchy(db, expand="user_stories,comments")


def test_epic_hierarchy_always_includes_stories(db, tree):
    node = navigation.get_epic_hierarchy(db, tree["epic"].id)
    assert [s.id for s in node.user_stories] == [tree["story"].id]
    assert node.user_stories[0].requirements == []
    with pytest.raises(NotFound):
        navigation.get_epic_hierarchy(db, uuid.uuid4())


def test_entity_path(db, tree):
    path = navigation.get_entity_path(db, models.ENTITY_REQUIREMENT, tree["requirement"].id)
    assert [p.type for p in path] == ["epic", "user_story", "requirement"]
    assert [p.reference_id for p in path] == ["EP-001", "US-001", "REQ-001"]

    path = navigation.get_entity_path(db, models.ENTITY_ACCEPTANCE_CRITERIA, tree["criteria"].id)
    assert path[-1].title.endswith("...")

    with pytest.raises(ValidationError):
        navigation.get_entity_path(db, "comment", tree["epic"].id)


def test_resolve_reference_id(db, tree):
    resolved = navigation.resolve_reference_id(db, "us-001")
    assert resolved.entity_type == "user_story"
    assert resolved.id == tree["story"].id

    with pytest.raises(ValidationError):
        navigation.resolve_reference_id(db, "US-001", entity_type="epic")
    with pytest.raises(ValidationError):
        navigation.resolve_reference_id(db, "checkout")
    with pytest.raises(NotFound):
        navigation.resolve_reference_id(db, "REQ-404")


def test_navigation_api(client, db, tree, editor_headers):
    resp = client.get(
        "/api/hierarchy", params={"expand": "user_stories"}, headers=editor_headers
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["total_count"] == 1
    assert body["data"][0]["user_stories"][0]["reference_id"] == "US-001"

    resp = client.get(
        f"/api/hierarchy/path/requirement/{tree['requirement'].id}", headers=editor_headers
    )
    assert [p["type"] for p in resp.json()] == ["epic", "user_story", "requirement"]

    resp = client.get("/api/references/ep-001", headers=editor_headers)
    assert resp.json()["id"] == str(tree["epic"].id)
