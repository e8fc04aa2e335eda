"""
Store and admin authentication, plus audit logging.

LOGIN RULES:
    - The store field accepts the 8-digit store id, the current slug or a
      slug the store was renamed away from.
    - Unknown store, unknown user and wrong password are indistinguishable to
      the caller: all raise AuthenticationFailed("Invalid credentials") and
      all cost one bcrypt comparison.
    - Correct credentials on a deactivated store raise StoreDeactivated.

Request-time identity (token -> principal) lives in core.request_context.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .core.errors import AuthenticationFailed, StoreDeactivated
from .models import AdminUser, AuditLog, Store, StoreUser, utcnow
from .security import (
    IssuedToken,
    burn_password_check,
    create_admin_token,
    create_store_token,
    verify_password,
)
from .tenancy.context import SlugResolution, StoreResolutionSource, resolve_store_input

logger = logging.getLogger(__name__)


__all__ = [
    "StoreLogin",
    "AdminLogin",
    "authenticate_store_user",
    "authenticate_admin",
    "store_user_payload",
    "admin_user_payload",
    # Audit logging
    "log_audit",
    "AUDIT_STORE_LOGIN",
    "AUDIT_ADMIN_LOGIN",
    "AUDIT_STORE_CREATED",
    "AUDIT_STORE_UPDATED",
    "AUDIT_STORE_SLUG_CHANGED",
    "AUDIT_STORE_DEACTIVATED",
    "AUDIT_USER_CREATED",
    "AUDIT_USER_UPDATED",
    "AUDIT_USER_DELETED",
    "AUDIT_USER_RESTORED",
    "AUDIT_USERS_PURGED",
    "AUDIT_ADMIN_CREATED",
    "AUDIT_ADMIN_UPDATED",
    "AUDIT_ADMIN_DELETED",
    "AUDIT_SETTINGS_UPDATED",
]


# ============================================================================
# LOGIN
# ============================================================================

@dataclass
class StoreLogin:
    user: StoreUser
    store: Store
    resolution: SlugResolution
    session: IssuedToken


@dataclass
class AdminLogin:
    admin: AdminUser
    session: IssuedToken


def _invalid_credentials() -> AuthenticationFailed:
    return AuthenticationFailed("Invalid credentials")


async def authenticate_store_user(
    session: AsyncSession,
    store_input: str,
    username: str,
    password: str,
) -> StoreLogin:
    """
    Verify store credentials and issue a session token.

    Stamps last_login on success (flushed, not committed).
    """
    resolved = await resolve_store_input(session, store_input)
    if resolved is None:
        burn_password_check(password)
        logger.info(f"Store login failed: no store for input {store_input!r}")
        raise _invalid_credentials()

    store, source = resolved
    result = await session.execute(
        select(StoreUser).where(
            StoreUser.store_id == store.store_id,
            StoreUser.username == username.strip(),
        )
    )
    user = result.scalar_one_or_none()
    if user is None:
        burn_password_check(password)
        logger.info(f"Store login failed for store {store.store_id}: unknown user")
        raise _invalid_credentials()

    if not verify_password(password, user.password_hash):
        logger.info(f"Store login failed for store {store.store_id}: bad password for {user.username}")
        raise _invalid_credentials()

    if not store.is_active:
        logger.info(f"Store login refused: store {store.store_id} is deactivated")
        raise StoreDeactivated()

    user.last_login = utcnow()
    await session.flush()

    issued = create_store_token(
        user_id=str(user.id),
        store_id=store.store_id,
        username=user.username,
        role=user.role.value,
    )
    resolution = SlugResolution(
        store_id=store.store_id,
        current_slug=store.store_slug,
        needs_redirect=source == StoreResolutionSource.HISTORICAL_SLUG,
    )
    logger.info(f"Store user {user.username} signed in to store {store.store_id} via {source.value}")
    return StoreLogin(user=user, store=store, resolution=resolution, session=issued)


async def authenticate_admin(session: AsyncSession, username: str, password: str) -> AdminLogin:
    result = await session.execute(select(AdminUser).where(AdminUser.username == username.strip()))
    admin = result.scalar_one_or_none()
    if admin is None:
        burn_password_check(password)
        logger.info("Admin login failed: unknown user")
        raise _invalid_credentials()
    if not verify_password(password, admin.password_hash):
        logger.info(f"Admin login failed: bad password for {admin.username}")
        raise _invalid_credentials()

    issued = create_admin_token(admin_id=str(admin.id), username=admin.username, role=admin.role.value)
    logger.info(f"Admin {admin.username} signed in")
    return AdminLogin(admin=admin, session=issued)


# ============================================================================
# PAYLOADS
# ============================================================================

def store_user_payload(user: StoreUser, store: Store) -> dict:
    """Public view of a store user. Never includes the password hash."""
    return {
        "id": str(user.id),
        "username": user.username,
        "role": user.role.value,
        "pin": user.pin,
        "store_id": store.store_id,
        "store_name": store.store_name,
        "store_slug": store.store_slug,
        "subscription_date": user.subscription_date.isoformat() if user.subscription_date else None,
        "subscription_expiry": user.subscription_expiry.isoformat() if user.subscription_expiry else None,
        "last_login": user.last_login.isoformat() if user.last_login else None,
    }


def admin_user_payload(admin: AdminUser) -> dict:
    return {
        "id": str(admin.id),
        "username": admin.username,
        "email": admin.email,
        "role": admin.role.value,
    }


# ============================================================================
# AUDIT LOGGING HELPERS
# ============================================================================

async def log_audit(
    session: AsyncSession,
    *,
    actor: str,
    action: str,
    store_id: Optional[str] = None,
    target_type: Optional[str] = None,
    target_id: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> AuditLog:
    """
    Create an audit log entry.

    Do NOT put passwords, hashes or tokens in metadata.

    Example:
        await log_audit(
            session,
            actor=f"admin:{principal.username}",
            action=AUDIT_STORE_CREATED,
            store_id=store.store_id,
            target_type="store",
            target_id=store.store_id,
            metadata={"slug": store.store_slug},
        )
    """
    audit_log = AuditLog(
        store_id=store_id,
        actor=actor,
        action=action,
        target_type=target_type,
        target_id=target_id,
        extra_data=metadata,  # Maps to 'metadata' column in DB
    )
    session.add(audit_log)
    # Don't commit here - let the caller control the transaction
    await session.flush()

    logger.info(f"Audit: {action} by {actor} (store={store_id}, target={target_type}:{target_id})")
    return audit_log


# ============================================================================
# COMMON AUDIT ACTIONS
# ============================================================================

# Sign-ins
AUDIT_STORE_LOGIN = "store.login"
AUDIT_ADMIN_LOGIN = "admin.login"

# Store lifecycle
AUDIT_STORE_CREATED = "store.created"
AUDIT_STORE_UPDATED = "store.updated"
AUDIT_STORE_SLUG_CHANGED = "store.slug_changed"
AUDIT_STORE_DEACTIVATED = "store.deactivated"

# Users
AUDIT_USER_CREATED = "user.created"
AUDIT_USER_UPDATED = "user.updated"
AUDIT_USER_DELETED = "user.deleted"
AUDIT_USER_RESTORED = "user.restored"
AUDIT_USERS_PURGED = "user.purged"

# Administrators
AUDIT_ADMIN_CREATED = "admin.created"
AUDIT_ADMIN_UPDATED = "admin.updated"
AUDIT_ADMIN_DELETED = "admin.deleted"

# Store configuration
AUDIT_SETTINGS_UPDATED = "settings.updated"
