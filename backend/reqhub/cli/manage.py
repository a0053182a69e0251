"""Administrative commands for bootstrapping and maintaining a reqhub database."""

# purpose: first-administrator bootstrap, default seeding and token maintenance
# status: active
# depends_on: reqhub.database, reqhub.services.users, reqhub.services.tokens, reqhub.services.accounts, reqhub.services.config

from __future__ import annotations

import json

import typer

from .. import schemas
from ..database import Base, SessionLocal, engine
from ..errors import DomainError
from ..services import accounts, config, tokens, users

app = typer.Typer(help="reqhub maintenance commands")


def init_admin(
    username: str, email: str, token_name: str = "bootstrap", password: str | None = None
) -> dict[str, str]:
    """Create the first Administrator and issue a token for it.

    The plain token is part of the returned summary and cannot be recovered later.
    """

    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        admin = users.create_user(
            session,
            schemas.UserCreate(
                username=username, email=email, role="Administrator", password=password
            ),
        )
        full_token, pat = tokens.create_token(session, admin, schemas.PATCreate(name=token_name))
        return {
            "user_id": str(admin.id),
            "username": admin.username,
            "token_id": str(pat.id),
            "token": full_token,
        }
    finally:
        session.close()


def seed() -> dict[str, int]:
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        return config.seed_defaults(session)
    finally:
        session.close()


def cleanup_tokens() -> dict[str, int]:
    session = SessionLocal()
    try:
        return {
            "removed": tokens.cleanup_expired(session),
            "refresh_tokens_removed": accounts.cleanup_expired_refresh_tokens(session),
        }
    finally:
        session.close()


@app.command("init-admin")
def init_admin_command(
    username: str = typer.Option(..., help="Administrator username"),
    email: str = typer.Option(..., help="Administrator email address"),
    token_name: str = typer.Option("bootstrap", help="Name of the issued access token"),
    password: str | None = typer.Option(None, help="Password for signing in at /api/auth/login"),
) -> None:
    """CLI wrapper for :func:`init_admin`."""

    try:
        summary = init_admin(username, email, token_name, password)
    except DomainError as exc:
        raise typer.BadParameter(exc.message)
    typer.echo(json.dumps(summary))


@app.command("seed")
def seed_command() -> None:
    """Install default requirement types, relationship types and status workflows."""

    typer.echo(json.dumps(seed()))


@app.command("cleanup-tokens")
def cleanup_tokens_command() -> None:
    typer.echo(json.dumps(cleanup_tokens()))


if __name__ == "__main__":
    app()
