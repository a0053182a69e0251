import pytest

from reqhub import audit, models, schemas
from reqhub.errors import HasDependencies, InvariantViolation, NotFound, TransactionFailed
from reqhub.services import comments, deletion, epics, requirements
from conftest import make_user, new_criteria, new_epic, new_requirement, new_story


def _comment(db, user, entity_type, entity_id, content="note"):
    return comments.create_comment(
        db, entity_type, entity_id, user.id, schemas.CommentCreate(content=content)
    )


def test_safe_delete_of_epic_with_story_is_refused(db):
    user = make_user(db)
    epic = new_epic(db, user)
    story = new_story(db, user, epic)

    info = deletion.validate_delete(db, models.ENTITY_EPIC, epic.id)
    assert not info.can_delete
    assert len(info.dependencies) == 1
    assert info.dependencies[0].entity_id == story.id
    assert info.cascade_delete_count == 1
    assert info.requires_confirmation

    with pytest.raises(HasDependencies) as exc:
        epics.delete_epic(db, epic.id, user.id)
    assert exc.value.dependencies[0].reference_id == story.reference_id
    assert epics.get_epic(db, epic.id).id == epic.id


def test_validate_delete_is_read_only(db, functional_type):
    user = make_user(db)
    epic = new_epic(db, user)
    story = new_story(db, user, epic)
    new_criteria(db, user, story)
    new_requirement(db, user, story, functional_type)

    first = deletion.validate_delete(db, models.ENTITY_EPIC, epic.id)
    second = deletion.validate_delete(db, models.ENTITY_EPIC, epic.id)
    assert first == second
    assert first.cascade_delete_count == 3
    assert [e.entity_type for e in first.cascade_delete_entities] == [
        "user_story",
        "acceptance_criteria",
        "requirement",
    ]


def test_force_delete_cascades_through_epic(db, functional_type, depends_on_type):
    user = make_user(db)
    epic = new_epic(db, user)
    story = new_story(db, user, epic)
    criteria = new_criteria(db, user, story)
    requirement = new_requirement(db, user, story, functional_type, criteria=criteria)

    other_epic = new_epic(db, user, title="Billing")
    other_story = new_story(db, user, other_epic)
    survivor = new_requirement(db, user, other_story, functional_type, title="Invoice")
    relationship = requirements.create_relationship(
        db,
        user.id,
        schemas.RelationshipCreate(
            source_requirement_id=survivor.id,
            target_requirement_id=requirement.id,
            relationship_type_id=depends_on_type.id,
        ),
    )
    relationship_id = relationship.id

    for entity_type, obj in (
        (models.ENTITY_EPIC, epic),
        (models.ENTITY_USER_STORY, story),
        (models.ENTITY_ACCEPTANCE_CRITERIA, criteria),
        (models.ENTITY_REQUIREMENT, requirement),
    ):
        _comment(db, user, entity_type, obj.id)

    result = epics.delete_epic(db, epic.id, user.id, force=True)

    assert result.reference_id == epic.reference_id
    assert result.deleted_by == user.id
    assert result.transaction_id.startswith("del_")
    assert [(e.entity_type, e.entity_id) for e in result.cascade_deleted] == [
        ("user_story", story.id),
        ("acceptance_criteria", criteria.id),
        ("requirement", requirement.id),
        ("requirement_relationship", relationship_id),
    ]

    db.expire_all()
    for model, obj_id in (
        (models.Epic, epic.id),
        (models.UserStory, story.id),
        (models.AcceptanceCriteria, criteria.id),
        (models.Requirement, requirement.id),
        (models.RequirementRelationship, relationship_id),
    ):
        assert db.get(model, obj_id) is None
    assert db.get(models.Requirement, survivor.id) is not None
    assert db.query(models.Comment).count() == 0

    logs = audit.list_logs(db, transaction_id=result.transaction_id)
    assert len(logs) == 4
    assert {log.action for log in logs} == {"delete", "cascade_delete"}
    root = next(log for log in logs if log.action == "delete")
    assert root.id == result.audit_log_id
    assert root.target_id == epic.id


def test_last_acceptance_criteria(db, functional_type):
    user = make_user(db)
    epic = new_epic(db, user)
    story = new_story(db, user, epic)
    criteria = new_criteria(db, user, story)
    requirement = new_requirement(db, user, story, functional_type, criteria=criteria)

    info = deletion.validate_delete(db, models.ENTITY_ACCEPTANCE_CRITERIA, criteria.id)
    assert not info.can_delete
    assert info.dependencies[0].reason == deletion.LAST_AC_REASON
    assert info.cascade_delete_entities[0].entity_type == deletion.UNLINK_ENTITY
    assert info.requires_confirmation

    with pytest.raises(InvariantViolation):
        deletion.delete(db, models.ENTITY_ACCEPTANCE_CRITERIA, criteria.id, user.id)

    deletion.delete(db, models.ENTITY_ACCEPTANCE_CRITERIA, criteria.id, user.id, force=True)
    db.expire_all()
    assert db.get(models.AcceptanceCriteria, criteria.id) is None
    kept = db.get(models.Requirement, requirement.id)
    assert kept is not None
    assert kept.acceptance_criteria_id is None


def test_non_last_acceptance_criteria_deletes_safely(db):
    user = make_user(db)
    epic = new_epic(db, user)
    story = new_story(db, user, epic)
    first = new_criteria(db, user, story)
    new_criteria(db, user, story, description="Empty queue shows a hint")
    result = deletion.delete(db, models.ENTITY_ACCEPTANCE_CRITERIA, first.id, user.id)
    assert result.cascade_deleted == []


def test_requirement_delete_removes_relationships(db, functional_type, depends_on_type):
    user = make_user(db)
    epic = new_epic(db, user)
    story = new_story(db, user, epic)
    source = new_requirement(db, user, story, functional_type, title="Source")
    target = new_requirement(db, user, story, functional_type, title="Target")
    requirements.create_relationship(
        db,
        user.id,
        schemas.RelationshipCreate(
            source_requirement_id=source.id,
            target_requirement_id=target.id,
            relationship_type_id=depends_on_type.id,
        ),
    )
    info = deletion.validate_delete(db, models.ENTITY_REQUIREMENT, target.id)
    assert info.can_delete
    assert info.cascade_delete_entities[0].title == f"Relationship with {source.reference_id}"

    result = requirements.delete_requirement(db, target.id, user.id)
    assert [e.entity_type for e in result.cascade_deleted] == ["requirement_relationship"]
    assert requirements.list_relationships(db, source.id) == []


def test_failed_delete_rolls_back(db, monkeypatch):
    user = make_user(db)
    epic = new_epic(db, user)
    new_story(db, user, epic)

    def broken(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(comments, "delete_for_entity", broken)
    with pytest.raises(TransactionFailed):
        epics.delete_epic(db, epic.id, user.id, force=True)
    db.expire_all()
    assert db.get(models.Epic, epic.id) is not None
    assert db.query(models.UserStory).count() == 1
    assert db.query(models.AuditLog).count() == 0


def test_delete_unknown_entity(db):
    user = make_user(db)
    epic = new_epic(db, user)
    with pytest.raises(NotFound):
        deletion.delete(db, models.ENTITY_USER_STORY, epic.id, user.id)


def test_delete_api(client, db, editor, editor_headers, commenter_headers):
    epic = new_epic(db, editor)
    new_story(db, editor, epic)

    resp = client.get(f"/api/epics/{epic.reference_id}/validate-deletion", headers=editor_headers)
    assert resp.status_code == 200
    assert resp.json()["can_delete"] is False

    resp = client.delete(f"/api/epics/{epic.id}", headers=commenter_headers)
    assert resp.status_code == 403

    resp = client.delete(f"/api/epics/{epic.id}", headers=editor_headers)
    assert resp.status_code == 409
    body = resp.json()["error"]
    assert body["code"] == "HAS_DEPENDENCIES"
    assert body["dependencies"][0]["entity_type"] == "user_story"

    resp = client.delete(f"/api/epics/{epic.id}", params={"force": "true"}, headers=editor_headers)
    assert resp.status_code == 200
    assert resp.json()["cascade_deleted"][0]["entity_type"] == "user_story"
    assert client.get(f"/api/epics/{epic.id}", headers=editor_headers).status_code == 404
