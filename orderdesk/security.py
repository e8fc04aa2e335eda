"""
Password hashing and session tokens.

Passwords are hashed with bcrypt before they are stored; plain passwords never
leave the request that carried them. Session tokens are HS256 JWTs signed with
separate secrets for store users and platform administrators.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache

import bcrypt
import jwt

from .core.config import get_settings
from .core.errors import AuthenticationFailed, InvalidPayload

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
TOKEN_TYPE_STORE = "store"
TOKEN_TYPE_ADMIN = "admin"

# bcrypt only looks at the first 72 bytes and newer releases refuse longer input
MAX_PASSWORD_BYTES = 72


# ============================================================================
# PASSWORDS
# ============================================================================

def hash_password(password: str) -> str:
    encoded = password.encode("utf-8")
    if not encoded:
        raise InvalidPayload("Password cannot be empty")
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise InvalidPayload(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    salt = bcrypt.gensalt(rounds=get_settings().bcrypt_rounds)
    return bcrypt.hashpw(encoded, salt).decode("utf-8")


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    encoded = password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, password_hash.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return hash_password("orderdesk-timing-equalizer")


def burn_password_check(password: str) -> None:
    """Spend one bcrypt comparison so unknown users cost as much as wrong passwords."""
    verify_password(password, _dummy_hash())


# ============================================================================
# SESSION TOKENS
# ============================================================================

@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: datetime


def _issue(claims: dict, secret: str, ttl_hours: int) -> IssuedToken:
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(hours=ttl_hours)
    payload = {**claims, "iat": now, "exp": expires_at}
    token = jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)
    return IssuedToken(token=token, expires_at=expires_at)


def create_store_token(*, user_id: str, store_id: str, username: str, role: str) -> IssuedToken:
    settings = get_settings()
    return _issue(
        {
            "sub": str(user_id),
            "store_id": store_id,
            "username": username,
            "role": role,
            "typ": TOKEN_TYPE_STORE,
        },
        settings.store_jwt_secret,
        settings.session_ttl_hours,
    )


def create_admin_token(*, admin_id: str, username: str, role: str) -> IssuedToken:
    settings = get_settings()
    return _issue(
        {
            "sub": str(admin_id),
            "username": username,
            "role": role,
            "typ": TOKEN_TYPE_ADMIN,
        },
        settings.admin_jwt_secret,
        settings.admin_session_ttl_hours,
    )


def decode_token(token: str, *, expected_type: str) -> dict:
    """
    Verify signature, expiry and token type.

    Raises:
        AuthenticationFailed: for any invalid, expired or mistyped token
    """
    settings = get_settings()
    secret = settings.admin_jwt_secret if expected_type == TOKEN_TYPE_ADMIN else settings.store_jwt_secret
    try:
        claims = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationFailed("Session expired. Please sign in again.")
    except jwt.InvalidTokenError as e:
        logger.warning(f"Token verification failed: {e}")
        raise AuthenticationFailed("Invalid or expired token. Please sign in again.")

    if claims.get("typ") != expected_type or not claims.get("sub"):
        raise AuthenticationFailed("Invalid or expired token. Please sign in again.")
    return claims
