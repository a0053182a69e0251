from datetime import datetime, timedelta, timezone

from reqhub import audit, models
from reqhub.services import epics
from conftest import make_user, new_epic, new_story


def test_log_action_and_filters(db):
    user = make_user(db)
    epic = new_epic(db, user)
    audit.log_action(db, user.id, "export", models.ENTITY_EPIC, epic.id, {"format": "csv"})
    db.commit()
    logs = audit.list_logs(db, target_type="epic", target_id=epic.id)
    assert len(logs) == 1
    assert logs[0].details == {"format": "csv"}
    assert audit.list_logs(db, user_id=make_user(db).id) == []


def test_report_counts_actions(db):
    user = make_user(db)
    epic = new_epic(db, user)
    new_story(db, user, epic)
    epics.delete_epic(db, epic.id, user.id, force=True)
    now = datetime.now(timezone.utc)
    report = audit.generate_report(db, now - timedelta(minutes=5), now + timedelta(minutes=5))
    assert report == [
        {"action": "cascade_delete", "entity_type": "user_story", "count": 1},
        {"action": "delete", "entity_type": "epic", "count": 1},
    ]


def test_audit_api(client, db, editor, editor_headers):
    epic = new_epic(db, editor)
    result = epics.delete_epic(db, epic.id, editor.id)
    resp = client.get(
        "/api/audit", params={"transaction_id": result.transaction_id}, headers=editor_headers
    )
    assert resp.status_code == 200
    entries = resp.json()
    assert len(entries) == 1
    assert entries[0]["reference_id"] == "EP-001"
    assert entries[0]["action"] == "delete"
