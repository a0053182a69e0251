import pytest

from reqhub import models, schemas
from reqhub.errors import InvariantViolation, NotFound, ValidationError
from reqhub.services import comments, epics
from conftest import make_user, new_epic

DESCRIPTION = "Users can pay with saved cards during checkout"


def _inline(text, start):
    return schemas.CommentCreate(
        content="Which card networks?",
        linked_text=text,
        text_position_start=start,
        text_position_end=start + len(text),
    )


def test_inline_comment_is_hidden_when_anchor_changes(db):
    user = make_user(db)
    epic = new_epic(db, user, description=DESCRIPTION)
    comment = comments.create_comment(
        db, models.ENTITY_EPIC, epic.id, user.id, _inline("saved cards", 19)
    )
    assert comment.is_inline

    epics.update_epic(db, epic.id, schemas.EpicUpdate(description="Users can pay at checkout"))

    db.refresh(comment)
    assert not comment.is_inline
    assert comment.linked_text is None
    assert comment.text_position_start is None
    assert comment.content.startswith(comments.HIDDEN_MARKER)
    assert comments.get_inline(db, models.ENTITY_EPIC, epic.id) == []


def test_inline_comment_survives_unrelated_edit(db):
    user = make_user(db)
    epic = new_epic(db, user, description=DESCRIPTION)
    comment = comments.create_comment(
        db, models.ENTITY_EPIC, epic.id, user.id, _inline("Users", 0)
    )
    epics.update_epic(db, epic.id, schemas.EpicUpdate(description="Users can pay with anything"))
    db.refresh(comment)
    assert comment.is_inline
    assert comment.content == "Which card networks?"


@pytest.mark.parametrize(
    "fields",
    [
        {"linked_text": "Users"},
        {"linked_text": "Users", "text_position_start": 0},
        {"text_position_start": 0, "text_position_end": 5},
    ],
)
def test_partial_anchor_is_rejected(db, fields):
    user = make_user(db)
    epic = new_epic(db, user, description=DESCRIPTION)
    with pytest.raises(ValidationError):
        comments.create_comment(
            db, models.ENTITY_EPIC, epic.id, user.id, schemas.CommentCreate(content="x", **fields)
        )


@pytest.mark.parametrize(
    "text,start,end",
    [
        ("Users", 1, 6),
        ("Users", 5, 0),
        ("Users", -1, 4),
        ("checkout", 38, 400),
    ],
)
def test_anchor_must_match_description(db, text, start, end):
    user = make_user(db)
    epic = new_epic(db, user, description=DESCRIPTION)
    payload = schemas.CommentCreate(
        content="x", linked_text=text, text_position_start=start, text_position_end=end
    )
    with pytest.raises(ValidationError):
        comments.create_comment(db, models.ENTITY_EPIC, epic.id, user.id, payload)


def test_replies_are_threaded_under_their_root(db):
    user = make_user(db)
    epic = new_epic(db, user)
    root = comments.create_comment(
        db, models.ENTITY_EPIC, epic.id, user.id, schemas.CommentCreate(content="root")
    )
    comments.create_comment(
        db,
        models.ENTITY_EPIC,
        epic.id,
        user.id,
        schemas.CommentCreate(content="reply", parent_comment_id=root.id),
    )
    thread = comments.get_threaded(db, models.ENTITY_EPIC, epic.id)
    assert len(thread) == 1
    assert thread[0].content == "root"
    assert thread[0].depth == 0
    assert [r.content for r in thread[0].replies] == ["reply"]
    assert thread[0].replies[0].is_reply
    assert thread[0].replies[0].depth == 1


def test_reply_must_target_same_entity(db):
    user = make_user(db)
    first = new_epic(db, user, title="First")
    second = new_epic(db, user, title="Second")
    root = comments.create_comment(
        db, models.ENTITY_EPIC, first.id, user.id, schemas.CommentCreate(content="root")
    )
    with pytest.raises(InvariantViolation):
        comments.create_comment(
            db,
            models.ENTITY_EPIC,
            second.id,
            user.id,
            schemas.CommentCreate(content="reply", parent_comment_id=root.id),
        )


def test_comment_on_missing_entity(db):
    user = make_user(db)
    epic = new_epic(db, user)
    with pytest.raises(NotFound):
        comments.create_comment(
            db, models.ENTITY_USER_STORY, epic.id, user.id, schemas.CommentCreate(content="x")
        )
    with pytest.raises(ValidationError):
        comments.create_comment(
            db, "steering_document", epic.id, user.id, schemas.CommentCreate(content="x")
        )


def test_comment_with_replies_cannot_be_deleted(db):
    user = make_user(db)
    epic = new_epic(db, user)
    root = comments.create_comment(
        db, models.ENTITY_EPIC, epic.id, user.id, schemas.CommentCreate(content="root")
    )
    reply = comments.create_comment(
        db,
        models.ENTITY_EPIC,
        epic.id,
        user.id,
        schemas.CommentCreate(content="reply", parent_comment_id=root.id),
    )
    with pytest.raises(ValidationError):
        comments.delete_comment(db, root.id)
    comments.delete_comment(db, reply.id)
    comments.delete_comment(db, root.id)
    assert comments.list_by_entity(db, models.ENTITY_EPIC, epic.id) == []


def test_resolve_and_filter(db):
    user = make_user(db)
    epic = new_epic(db, user)
    comment = comments.create_comment(
        db, models.ENTITY_EPIC, epic.id, user.id, schemas.CommentCreate(content="todo")
    )
    comments.resolve_comment(db, comment.id)
    assert [c.id for c in comments.list_by_status(db, True)] == [comment.id]
    assert comments.list_by_status(db, False) == []
    comments.unresolve_comment(db, comment.id)
    assert [c.id for c in comments.list_by_status(db, False)] == [comment.id]


def test_comment_api(client, db, editor, commenter, editor_headers, commenter_headers):
    epic = new_epic(db, editor, description=DESCRIPTION)

    resp = client.post(
        f"/api/epics/{epic.reference_id}/comments",
        json={
            "content": "Which networks?",
            "linked_text": "saved cards",
            "text_position_start": 19,
            "text_position_end": 30,
        },
        headers=commenter_headers,
    )
    assert resp.status_code == 201
    created = resp.json()
    assert created["is_inline"] is True
    assert created["entity_type"] == "epic"

    resp = client.post(
        f"/api/epics/{epic.id}/comments",
        json={"content": "Visa only", "parent_comment_id": created["id"]},
        headers=editor_headers,
    )
    assert resp.status_code == 201

    thread = client.get(f"/api/epics/{epic.id}/comments", headers=editor_headers).json()
    assert len(thread) == 1
    assert thread[0]["replies"][0]["content"] == "Visa only"

    inline = client.get(f"/api/epics/{epic.id}/comments/inline", headers=editor_headers).json()
    assert [c["id"] for c in inline] == [created["id"]]

    resp = client.put(
        f"/api/comments/{created['id']}", json={"content": "edited"}, headers=editor_headers
    )
    assert resp.status_code == 403

    resp = client.post(f"/api/comments/{created['id']}/resolve", headers=commenter_headers)
    assert resp.status_code == 403
    resp = client.post(f"/api/comments/{created['id']}/resolve", headers=editor_headers)
    assert resp.status_code == 200
    assert resp.json()["is_resolved"] is True

    resp = client.get("/api/steering-documents/x/comments", headers=editor_headers)
    assert resp.status_code == 400


def test_case_change_hides_anchor(db):
    user = make_user(db)
    epic = new_epic(db, user, description="bar foo baz")
    comment = comments.create_comment(
        db, models.ENTITY_EPIC, epic.id, user.id, _inline("foo", 4)
    )
    epics.update_epic(db, epic.id, schemas.EpicUpdate(description="bar FOO baz"))
    assert comments.get_inline(db, models.ENTITY_EPIC, epic.id) == []
    hidden = comments.get_comment(db, comment.id)
    assert hidden.linked_text is None
    assert hidden.content == comments.HIDDEN_MARKER + "Which card networks?"
