import base64
import os
import secrets
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt

from .errors import AuthInvalid, ValidationError

# purpose: secret hashing, opaque token generation and signed access tokens
# status: active

PAT_PREFIX = "mcp_pat_"
TOKEN_BYTES = 32
DEFAULT_HASH_COST = 10
HASH_COST = int(os.getenv("PAT_HASH_COST", str(DEFAULT_HASH_COST)))

SECRET_KEY = os.getenv("SECRET_KEY", "reqhub-development-secret-change-me")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(24 * 60)))

MIN_PASSWORD_LENGTH = 8
# bcrypt only reads the first 72 bytes
MAX_PASSWORD_BYTES = 72


def hash_secret(secret: str, cost: int | None = None) -> str:
    """Return a salted bcrypt hash of ``secret``."""
    if not secret:
        raise ValueError("secret cannot be empty")
    salt = bcrypt.gensalt(rounds=cost or HASH_COST)
    return bcrypt.hashpw(secret.encode(), salt).decode()


def verify_secret(secret: str, hashed: str) -> bool:
    """Compare ``secret`` with a stored hash in constant time."""
    if not secret or not hashed:
        return False
    try:
        return bcrypt.checkpw(secret.encode(), hashed.encode())
    except ValueError:
        # malformed stored hash or oversized secret
        return False


def generate_secret(num_bytes: int = TOKEN_BYTES) -> str:
    raw = secrets.token_bytes(num_bytes)
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()


def generate_token(prefix: str = PAT_PREFIX) -> tuple[str, str]:
    """Return ``(full_token, secret)`` where ``full_token == prefix + secret``."""
    secret = generate_secret()
    return prefix + secret, secret


def check_password(password: str) -> None:
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"password must be at least {MIN_PASSWORD_LENGTH} characters")
    if len(password.encode()) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"password must be at most {MAX_PASSWORD_BYTES} bytes")


def get_password_hash(password: str) -> str:
    check_password(password)
    return hash_secret(password)


def verify_password(password: str, hashed: str | None) -> bool:
    return verify_secret(password, hashed or "")


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Sign ``data`` as a JWT that expires after ``expires_delta``."""
    now = datetime.now(timezone.utc)
    claims = dict(data)
    claims["iat"] = now
    claims["exp"] = now + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    try:
        return jwt.decode(
            token, SECRET_KEY, algorithms=[ALGORITHM], options={"require": ["exp", "sub"]}
        )
    except jwt.ExpiredSignatureError:
        raise AuthInvalid("token expired")
    except jwt.InvalidTokenError:
        raise AuthInvalid("invalid token")
