import json
from datetime import datetime, timedelta, timezone

from typer.testing import CliRunner

from reqhub import models, schemas, tasks
from reqhub.cli.manage import app
from reqhub.services import accounts, tokens
from conftest import make_user

runner = CliRunner()


def _expire(db, pat):
    pat.expires_at = datetime.now(timezone.utc) - timedelta(hours=1)
    db.commit()


def test_cleanup_task_runs_eagerly(db):
    user = make_user(db)
    _, pat = tokens.create_token(
        db,
        user,
        schemas.PATCreate(name="old", expires_at=datetime.now(timezone.utc) + timedelta(hours=1)),
    )
    _expire(db, pat)
    assert tasks.celery_app.conf.task_always_eager
    assert tasks.enqueue_cleanup_expired_tokens() == 1
    assert "cleanup-expired-tokens" in tasks.celery_app.conf.beat_schedule


def test_init_admin_command(db):
    result = runner.invoke(
        app, ["init-admin", "--username", "root", "--email", "root@example.com"]
    )
    assert result.exit_code == 0, result.output
    summary = json.loads(result.output)
    assert summary["username"] == "root"
    assert summary["token"].startswith("mcp_pat_")

    owner = tokens.validate_token(db, summary["token"])
    assert owner.role == models.ROLE_ADMINISTRATOR

    again = runner.invoke(
        app, ["init-admin", "--username", "root", "--email", "root@example.com"]
    )
    assert again.exit_code != 0


def test_seed_and_cleanup_commands(db):
    result = runner.invoke(app, ["seed"])
    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["status_models"] == 3

    user = make_user(db)
    _, pat = tokens.create_token(
        db,
        user,
        schemas.PATCreate(name="stale", expires_at=datetime.now(timezone.utc) + timedelta(hours=1)),
    )
    _expire(db, pat)
    result = runner.invoke(app, ["cleanup-tokens"])
    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == {"removed": 1, "refresh_tokens_removed": 0}


def test_init_admin_with_password(db):
    result = runner.invoke(
        app,
        ["init-admin", "--username", "ops", "--email", "ops@example.com", "--password", "bootstrap pass"],
    )
    assert result.exit_code == 0, result.output
    token = accounts.login(db, "ops", "bootstrap pass")
    assert token.user.role == models.ROLE_ADMINISTRATOR
