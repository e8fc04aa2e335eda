"""
Request Context Resolution Module

This module is the single place where a request's identity is established.
Routes never read tokens or headers themselves; they depend on one of:

    get_store_principal   -> the signed-in store user (tenant users)
    get_store_context     -> the tenant the store user belongs to
    require_store_role()  -> the store user, if their role is high enough
    get_admin_principal   -> the signed-in platform administrator
    require_admin_role()  -> the administrator, if their role is high enough

AUTH METHOD:
    - JWT bearer token in the Authorization header
    - X-App-Token header (same token, kept for older dashboard builds)
    - The token only names the user; role and store status are re-read from
      the database on every request so demotions and deactivations apply at once.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import AdminUser, Store, StoreUser
from ..roles import AdminRole, StoreRole, has_at_least
from ..security import TOKEN_TYPE_ADMIN, TOKEN_TYPE_STORE, decode_token
from ..tenancy.context import StoreContext, StoreResolutionSource, validate_store_id
from .db import get_session
from .errors import AccessDenied, AuthenticationFailed, StoreDeactivated

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StorePrincipal:
    """The authenticated tenant user behind a request."""

    user_id: str
    store_id: str
    username: str
    role: StoreRole
    store_slug: str
    store_name: str
    auth_method: str = "jwt"


@dataclass(frozen=True)
class AdminPrincipal:
    """The authenticated platform administrator behind a request."""

    admin_id: str
    username: str
    role: AdminRole


def extract_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        if token:
            return token
    app_token = request.headers.get("X-App-Token", "").strip()
    return app_token or None


def _parse_uuid(value: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise AuthenticationFailed("Invalid or expired token. Please sign in again.")


async def get_store_principal(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> StorePrincipal:
    """
    Resolve the store user from the session token.

    Raises:
        AuthenticationFailed: no token, bad token, or the user no longer exists
        InvalidTenantId: the token carries a malformed store id
        AccessDenied: the user was moved out of the token's store
        StoreDeactivated: the store has been deactivated
    """
    token = extract_token(request)
    if not token:
        raise AuthenticationFailed("Authentication required. Please sign in.")

    claims = decode_token(token, expected_type=TOKEN_TYPE_STORE)
    store_id = validate_store_id(claims.get("store_id"))
    user_id = _parse_uuid(claims["sub"])

    result = await session.execute(
        select(StoreUser, Store)
        .join(Store, Store.store_id == StoreUser.store_id)
        .where(StoreUser.id == user_id)
    )
    row = result.first()
    if row is None:
        logger.warning(f"Token for unknown store user {user_id}")
        raise AuthenticationFailed("Invalid or expired token. Please sign in again.")

    user, store = row
    if user.store_id != store_id:
        logger.error(
            f"Tenant boundary violation! Token store_id={store_id}, user store_id={user.store_id}"
        )
        raise AccessDenied("Access denied. Session does not belong to this store.")
    if not store.is_active:
        raise StoreDeactivated()

    logger.debug(f"Store user {user.username} ({user.role.value}) authenticated for store {store_id}")
    return StorePrincipal(
        user_id=str(user.id),
        store_id=store.store_id,
        username=user.username,
        role=user.role,
        store_slug=store.store_slug,
        store_name=store.store_name,
    )


async def get_store_context(
    principal: StorePrincipal = Depends(get_store_principal),
) -> StoreContext:
    """FastAPI dependency: the tenant of the signed-in store user."""
    return StoreContext(
        store_id=principal.store_id,
        store_slug=principal.store_slug,
        store_name=principal.store_name,
        source=StoreResolutionSource.SESSION_TOKEN,
    )


def require_store_role(minimum: StoreRole):
    """
    Build a dependency that admits store users whose role is at least ``minimum``.

    Usage:
        @router.delete("/customers/{customer_id}")
        async def delete_customer(
            principal: StorePrincipal = Depends(require_store_role(StoreRole.STORE_ADMIN)),
        ): ...
    """

    async def dependency(
        principal: StorePrincipal = Depends(get_store_principal),
    ) -> StorePrincipal:
        if not has_at_least(principal.role, minimum):
            logger.warning(
                f"Authorization failed: {principal.username} has role {principal.role.value}, "
                f"needs {minimum.value} in store {principal.store_id}"
            )
            raise AccessDenied(
                f"Access denied. Required role: {minimum.value}. Your role: {principal.role.value}."
            )
        return principal

    return dependency


async def get_admin_principal(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> AdminPrincipal:
    token = extract_token(request)
    if not token:
        raise AuthenticationFailed("Authentication required. Please sign in.")

    claims = decode_token(token, expected_type=TOKEN_TYPE_ADMIN)
    admin_id = _parse_uuid(claims["sub"])

    result = await session.execute(select(AdminUser).where(AdminUser.id == admin_id))
    admin = result.scalar_one_or_none()
    if admin is None:
        raise AuthenticationFailed("Invalid or expired token. Please sign in again.")

    return AdminPrincipal(admin_id=str(admin.id), username=admin.username, role=admin.role)


def require_admin_role(minimum: AdminRole):
    async def dependency(
        principal: AdminPrincipal = Depends(get_admin_principal),
    ) -> AdminPrincipal:
        if not has_at_least(principal.role, minimum):
            logger.warning(
                f"Admin authorization failed: {principal.username} has role {principal.role.value}, "
                f"needs {minimum.value}"
            )
            raise AccessDenied(
                f"Access denied. Required role: {minimum.value}. Your role: {principal.role.value}."
            )
        return principal

    return dependency
