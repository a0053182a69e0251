from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from . import models, security
from .database import get_db
from .errors import AuthInvalid, Unauthorized
from .services import accounts, tokens

# purpose: resolve the caller from a bearer personal access token or access token and gate roles
# status: active
# depends_on: reqhub.services.tokens, reqhub.services.accounts

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> models.User:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthInvalid("missing bearer token")
    token = credentials.credentials
    if token.startswith(security.PAT_PREFIX):
        return tokens.validate_token(db, token)
    return accounts.user_from_access_token(db, token)


def require_editor(user: models.User) -> models.User:
    if not user.can_edit:
        raise Unauthorized("insufficient permissions to modify entities")
    return user


def require_config_manager(user: models.User) -> models.User:
    if not user.can_manage_config:
        raise Unauthorized("administrator role required")
    return user


def require_commenter(user: models.User) -> models.User:
    if not user.can_comment:
        raise Unauthorized("insufficient permissions to comment")
    return user
