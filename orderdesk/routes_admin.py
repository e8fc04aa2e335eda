"""
Admin console API: platform administrators manage stores and their users.

Roles:
    VIEWER       -> read stores, users and audit logs
    ADMIN        -> create/modify stores and users
    SUPER_ADMIN  -> deactivate stores, delete and restore users, manage administrators

Deleted store users are archived, not dropped; see user_archive.

Every mutation writes an audit record in the same transaction.
"""

import logging
import uuid
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import (
    AUDIT_ADMIN_CREATED,
    AUDIT_ADMIN_DELETED,
    AUDIT_ADMIN_LOGIN,
    AUDIT_ADMIN_UPDATED,
    AUDIT_STORE_CREATED,
    AUDIT_STORE_DEACTIVATED,
    AUDIT_STORE_SLUG_CHANGED,
    AUDIT_STORE_UPDATED,
    AUDIT_USER_CREATED,
    AUDIT_USER_DELETED,
    AUDIT_USER_RESTORED,
    AUDIT_USER_UPDATED,
    AUDIT_USERS_PURGED,
    admin_user_payload,
    authenticate_admin,
    log_audit,
    store_user_payload,
)
from .core.db import get_session
from .core.errors import AccessDenied, Conflict, InvalidPayload, RecordNotFound, StoreNotFound
from .core.request_context import AdminPrincipal, require_admin_role
from .models import AdminUser, AuditLog, DeletedStoreUser, Store, StoreSlugHistory, StoreUser
from .roles import AdminRole, StoreRole, has_at_least, parse_admin_role, parse_store_role
from .security import hash_password
from .seed import seed_default_settings_for_store
from .tenancy.context import get_store_by_id
from .tenancy.queries import store_count, store_get, store_insert, store_list
from .tenancy.slugs import ensure_unique_slug, generate_slug, next_store_id, rename_store_slug, validate_slug
from .user_archive import (
    archive_store_user,
    list_deleted_users,
    purge_at,
    purge_expired_users,
    restore_store_user,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])

admin_viewer = require_admin_role(AdminRole.VIEWER)
admin_editor = require_admin_role(AdminRole.ADMIN)
super_admin = require_admin_role(AdminRole.SUPER_ADMIN)


def _actor(principal: AdminPrincipal) -> str:
    return f"admin:{principal.username}"


async def _require_store(session: AsyncSession, store_id: str) -> Store:
    store = await get_store_by_id(session, store_id)
    if store is None:
        raise StoreNotFound(f"Store not found: {store_id}")
    return store


# ────────────────────────────────────────────────────────────────
# Request/Response Models
# ────────────────────────────────────────────────────────────────

class AdminLoginRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1, max_length=256)


class StoreUserInput(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=6, max_length=72)
    pin: Optional[str] = Field(None, pattern=r"^\d{4,8}$")
    role: str = "VIEWER"
    subscription_date: Optional[date] = None
    subscription_expiry: Optional[date] = None

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Username cannot be empty or whitespace")
        return v.strip()

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: str) -> str:
        return parse_store_role(v).value


class CreateStoreRequest(BaseModel):
    store_name: str = Field(..., min_length=1, max_length=255)
    store_slug: Optional[str] = Field(None, max_length=100)
    users: list[StoreUserInput] = Field(..., min_length=1)

    @field_validator("store_name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Store name cannot be empty or whitespace")
        return v.strip()

    @field_validator("users")
    @classmethod
    def validate_users(cls, v: list[StoreUserInput]) -> list[StoreUserInput]:
        if not any(user.role == StoreRole.STORE_ADMIN.value for user in v):
            raise ValueError("A new store needs at least one STORE_ADMIN user")
        names = [user.username for user in v]
        if len(names) != len(set(names)):
            raise ValueError("Usernames must be unique within the store")
        return v


class UpdateStoreRequest(BaseModel):
    store_name: Optional[str] = Field(None, min_length=1, max_length=255)
    store_slug: Optional[str] = Field(None, min_length=1, max_length=100)
    is_active: Optional[bool] = None


class UpdateStoreUserRequest(BaseModel):
    role: Optional[str] = None
    password: Optional[str] = Field(None, min_length=6, max_length=72)
    pin: Optional[str] = Field(None, pattern=r"^\d{4,8}$")
    subscription_date: Optional[date] = None
    subscription_expiry: Optional[date] = None

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: Optional[str]) -> Optional[str]:
        return parse_store_role(v).value if v is not None else None


class CreateAdminRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=8, max_length=72)
    email: Optional[str] = Field(None, max_length=255)
    role: str = "VIEWER"

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: str) -> str:
        return parse_admin_role(v).value


class UpdateAdminRequest(BaseModel):
    username: Optional[str] = Field(None, min_length=1, max_length=100)
    password: Optional[str] = Field(None, min_length=8, max_length=72)
    email: Optional[str] = Field(None, max_length=255)
    role: Optional[str] = None

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: Optional[str]) -> Optional[str]:
        return parse_admin_role(v).value if v is not None else None


class StoreResponse(BaseModel):
    store_id: str
    store_name: str
    store_slug: str
    is_active: bool
    created_at: datetime
    updated_at: datetime
    user_count: int = 0

    model_config = {"from_attributes": True}


class AuditLogResponse(BaseModel):
    id: int
    store_id: Optional[str]
    actor: str
    action: str
    target_type: Optional[str]
    target_id: Optional[str]
    metadata: Optional[dict] = Field(None, validation_alias="extra_data")
    created_at: datetime

    model_config = {"from_attributes": True}


def _store_response(store: Store, user_count: int = 0) -> StoreResponse:
    return StoreResponse(
        store_id=store.store_id,
        store_name=store.store_name,
        store_slug=store.store_slug,
        is_active=store.is_active,
        created_at=store.created_at,
        updated_at=store.updated_at,
        user_count=user_count,
    )


def _deleted_user_payload(archived: DeletedStoreUser, store: Store) -> dict:
    """Archive entry as shown in the console. Never includes the password hash."""
    return {
        "id": str(archived.id),
        "original_user_id": str(archived.original_user_id),
        "store_id": store.store_id,
        "store_name": store.store_name,
        "username": archived.username,
        "role": archived.role.value,
        "pin": archived.pin,
        "last_login": archived.last_login.isoformat() if archived.last_login else None,
        "subscription_date": archived.subscription_date.isoformat() if archived.subscription_date else None,
        "subscription_expiry": archived.subscription_expiry.isoformat() if archived.subscription_expiry else None,
        "deleted_at": archived.deleted_at.isoformat(),
        "deleted_by": archived.deleted_by,
        "purge_at": purge_at(archived).isoformat(),
    }


async def _add_store_user(session: AsyncSession, store_id: str, data: StoreUserInput) -> StoreUser:
    if await store_count(session, StoreUser, store_id, username=data.username):
        raise Conflict(f"Username '{data.username}' already exists in this store")
    return await store_insert(
        session,
        StoreUser,
        store_id,
        {
            "username": data.username,
            "password_hash": hash_password(data.password),
            "pin": data.pin,
            "role": StoreRole(data.role),
            "subscription_date": data.subscription_date,
            "subscription_expiry": data.subscription_expiry,
        },
    )


# ────────────────────────────────────────────────────────────────
# Session
# ────────────────────────────────────────────────────────────────

@router.post("/login")
async def admin_login(
    body: AdminLoginRequest,
    session: AsyncSession = Depends(get_session),
):
    login = await authenticate_admin(session, body.username, body.password)
    await log_audit(
        session,
        actor=f"admin:{login.admin.username}",
        action=AUDIT_ADMIN_LOGIN,
        target_type="admin_user",
        target_id=str(login.admin.id),
    )
    await session.commit()
    return {
        "success": True,
        "admin": admin_user_payload(login.admin),
        "session": {
            "token": login.session.token,
            "expires_at": login.session.expires_at.isoformat(),
        },
    }


@router.get("/me")
async def admin_me(principal: AdminPrincipal = Depends(admin_viewer)):
    return {"id": principal.admin_id, "username": principal.username, "role": principal.role.value}


# ────────────────────────────────────────────────────────────────
# Stores
# ────────────────────────────────────────────────────────────────

@router.get("/stores", response_model=list[StoreResponse])
async def list_stores(
    include_inactive: bool = Query(True),
    principal: AdminPrincipal = Depends(admin_viewer),
    session: AsyncSession = Depends(get_session),
):
    user_counts = (
        select(StoreUser.store_id, func.count(StoreUser.id).label("user_count"))
        .group_by(StoreUser.store_id)
        .subquery()
    )
    stmt = (
        select(Store, func.coalesce(user_counts.c.user_count, 0))
        .outerjoin(user_counts, user_counts.c.store_id == Store.store_id)
        .order_by(Store.store_id)
    )
    if not include_inactive:
        stmt = stmt.where(Store.is_active.is_(True))
    result = await session.execute(stmt)
    return [_store_response(store, count) for store, count in result.all()]


@router.post("/stores", status_code=201)
async def create_store(
    body: CreateStoreRequest,
    principal: AdminPrincipal = Depends(admin_editor),
    session: AsyncSession = Depends(get_session),
):
    """Create a store with its initial users and default settings."""
    if body.store_slug:
        base_slug = body.store_slug.strip().lower()
        if not validate_slug(base_slug):
            raise InvalidPayload(
                f"Invalid slug: {body.store_slug!r}. Use lowercase letters, digits and single hyphens."
            )
    else:
        base_slug = generate_slug(body.store_name)
    slug = await ensure_unique_slug(session, base_slug)

    store = Store(
        store_id=await next_store_id(session),
        store_name=body.store_name,
        store_slug=slug,
        is_active=True,
    )
    session.add(store)
    await session.flush()

    users = [await _add_store_user(session, store.store_id, data) for data in body.users]
    await seed_default_settings_for_store(session, store.store_id)

    await log_audit(
        session,
        actor=_actor(principal),
        action=AUDIT_STORE_CREATED,
        store_id=store.store_id,
        target_type="store",
        target_id=store.store_id,
        metadata={"slug": slug, "users": [user.username for user in users]},
    )
    await session.commit()
    await session.refresh(store)

    logger.info(f"Store {store.store_id} '{store.store_name}' created at /{slug} by {principal.username}")
    return {
        "success": True,
        "store": _store_response(store, len(users)).model_dump(mode="json"),
        "users": [store_user_payload(user, store) for user in users],
    }


@router.get("/stores/{store_id}")
async def get_store(
    store_id: str,
    principal: AdminPrincipal = Depends(admin_viewer),
    session: AsyncSession = Depends(get_session),
):
    store = await _require_store(session, store_id)
    users = await store_list(session, StoreUser, store.store_id, order_by=StoreUser.username)
    result = await session.execute(
        select(StoreSlugHistory.old_slug)
        .where(StoreSlugHistory.store_id == store.store_id)
        .order_by(StoreSlugHistory.changed_at.desc())
    )
    return {
        "store": _store_response(store, len(users)).model_dump(mode="json"),
        "users": [store_user_payload(user, store) for user in users],
        "previous_slugs": list(result.scalars().all()),
    }


@router.patch("/stores/{store_id}", response_model=StoreResponse)
async def update_store(
    store_id: str,
    body: UpdateStoreRequest,
    principal: AdminPrincipal = Depends(admin_editor),
    session: AsyncSession = Depends(get_session),
):
    store = await _require_store(session, store_id)
    changes = body.model_dump(exclude_unset=True)

    if changes.get("is_active") is False and not has_at_least(principal.role, AdminRole.SUPER_ADMIN):
        raise AccessDenied("Only a SUPER_ADMIN can deactivate a store")
    if "store_name" in changes and not (changes["store_name"] or "").strip():
        raise InvalidPayload("Store name cannot be empty")

    if changes.get("store_slug") and changes["store_slug"] != store.store_slug:
        old_slug = store.store_slug
        await rename_store_slug(session, store, changes["store_slug"].strip().lower())
        await log_audit(
            session,
            actor=_actor(principal),
            action=AUDIT_STORE_SLUG_CHANGED,
            store_id=store.store_id,
            target_type="store",
            target_id=store.store_id,
            metadata={"old_slug": old_slug, "new_slug": store.store_slug},
        )
    if changes.get("store_name"):
        store.store_name = changes["store_name"].strip()
    if changes.get("is_active") is not None:
        store.is_active = changes["is_active"]

    await log_audit(
        session,
        actor=_actor(principal),
        action=AUDIT_STORE_UPDATED,
        store_id=store.store_id,
        target_type="store",
        target_id=store.store_id,
        metadata={"fields": sorted(changes)},
    )
    await session.commit()
    await session.refresh(store)
    user_count = await store_count(session, StoreUser, store.store_id)
    return _store_response(store, user_count)


@router.post("/stores/{store_id}/deactivate", response_model=StoreResponse)
async def deactivate_store(
    store_id: str,
    principal: AdminPrincipal = Depends(super_admin),
    session: AsyncSession = Depends(get_session),
):
    """Soft-delete: the store and its data stay, but nobody can sign in."""
    store = await _require_store(session, store_id)
    store.is_active = False
    await log_audit(
        session,
        actor=_actor(principal),
        action=AUDIT_STORE_DEACTIVATED,
        store_id=store.store_id,
        target_type="store",
        target_id=store.store_id,
    )
    await session.commit()
    await session.refresh(store)
    user_count = await store_count(session, StoreUser, store.store_id)
    return _store_response(store, user_count)


# ────────────────────────────────────────────────────────────────
# Store Users
# ────────────────────────────────────────────────────────────────

@router.get("/stores/{store_id}/users")
async def list_users(
    store_id: str,
    principal: AdminPrincipal = Depends(admin_viewer),
    session: AsyncSession = Depends(get_session),
):
    store = await _require_store(session, store_id)
    users = await store_list(session, StoreUser, store.store_id, order_by=StoreUser.username)
    return [store_user_payload(user, store) for user in users]


@router.post("/stores/{store_id}/users", status_code=201)
async def create_user(
    store_id: str,
    body: StoreUserInput,
    principal: AdminPrincipal = Depends(admin_editor),
    session: AsyncSession = Depends(get_session),
):
    store = await _require_store(session, store_id)
    user = await _add_store_user(session, store.store_id, body)
    await log_audit(
        session,
        actor=_actor(principal),
        action=AUDIT_USER_CREATED,
        store_id=store.store_id,
        target_type="store_user",
        target_id=str(user.id),
        metadata={"username": user.username, "role": body.role},
    )
    await session.commit()
    await session.refresh(user)
    return store_user_payload(user, store)


@router.patch("/stores/{store_id}/users/{user_id}")
async def update_user(
    store_id: str,
    user_id: uuid.UUID,
    body: UpdateStoreUserRequest,
    principal: AdminPrincipal = Depends(admin_editor),
    session: AsyncSession = Depends(get_session),
):
    store = await _require_store(session, store_id)
    user = await store_get(session, StoreUser, store.store_id, "id", user_id)
    if user is None:
        raise RecordNotFound("User not found")

    changes = body.model_dump(exclude_unset=True)
    if changes.get("role"):
        user.role = StoreRole(changes["role"])
    if changes.get("password"):
        user.password_hash = hash_password(changes["password"])
    for field in ("pin", "subscription_date", "subscription_expiry"):
        if field in changes:
            setattr(user, field, changes[field])

    await log_audit(
        session,
        actor=_actor(principal),
        action=AUDIT_USER_UPDATED,
        store_id=store.store_id,
        target_type="store_user",
        target_id=str(user.id),
        # Field names only: never the password itself
        metadata={"fields": sorted(changes)},
    )
    await session.commit()
    await session.refresh(user)
    return store_user_payload(user, store)


@router.delete("/stores/{store_id}/users/{user_id}", status_code=204)
async def delete_user(
    store_id: str,
    user_id: uuid.UUID,
    principal: AdminPrincipal = Depends(super_admin),
    session: AsyncSession = Depends(get_session),
):
    """Archive the user; it can be restored until the retention period ends."""
    store = await _require_store(session, store_id)
    archived = await archive_store_user(session, store.store_id, user_id, deleted_by=_actor(principal))
    await log_audit(
        session,
        actor=_actor(principal),
        action=AUDIT_USER_DELETED,
        store_id=store.store_id,
        target_type="store_user",
        target_id=str(user_id),
        metadata={"username": archived.username, "archive_id": str(archived.id)},
    )
    await session.commit()


# ────────────────────────────────────────────────────────────────
# Deleted Store Users
# ────────────────────────────────────────────────────────────────

@router.get("/deleted-users")
async def get_deleted_users(
    store_id: Optional[str] = Query(None),
    principal: AdminPrincipal = Depends(admin_viewer),
    session: AsyncSession = Depends(get_session),
):
    rows = await list_deleted_users(session, store_id)
    return [_deleted_user_payload(archived, store) for archived, store in rows]


@router.post("/stores/{store_id}/deleted-users/{archive_id}/restore", status_code=201)
async def restore_deleted_user(
    store_id: str,
    archive_id: uuid.UUID,
    principal: AdminPrincipal = Depends(super_admin),
    session: AsyncSession = Depends(get_session),
):
    store = await _require_store(session, store_id)
    user = await restore_store_user(session, store.store_id, archive_id)
    await log_audit(
        session,
        actor=_actor(principal),
        action=AUDIT_USER_RESTORED,
        store_id=store.store_id,
        target_type="store_user",
        target_id=str(user.id),
        metadata={"username": user.username, "archive_id": str(archive_id)},
    )
    await session.commit()
    await session.refresh(user)
    return store_user_payload(user, store)


@router.post("/deleted-users/purge")
async def purge_deleted_users(
    principal: AdminPrincipal = Depends(super_admin),
    session: AsyncSession = Depends(get_session),
):
    """Drop archived users older than the retention period."""
    purged = await purge_expired_users(session)
    if purged:
        await log_audit(
            session,
            actor=_actor(principal),
            action=AUDIT_USERS_PURGED,
            target_type="store_user",
            metadata={"count": purged},
        )
    await session.commit()
    return {"purged": purged}


# ────────────────────────────────────────────────────────────────
# Administrators
# ────────────────────────────────────────────────────────────────

async def _require_admin(session: AsyncSession, admin_id: uuid.UUID) -> AdminUser:
    result = await session.execute(select(AdminUser).where(AdminUser.id == admin_id))
    admin = result.scalar_one_or_none()
    if admin is None:
        raise RecordNotFound("Admin not found")
    return admin


@router.get("/admins")
async def list_admins(
    principal: AdminPrincipal = Depends(super_admin),
    session: AsyncSession = Depends(get_session),
):
    result = await session.execute(select(AdminUser).order_by(AdminUser.created_at.desc(), AdminUser.username))
    return [admin_user_payload(admin) for admin in result.scalars().all()]

@router.post("/admins", status_code=201)
async def create_admin(
    body: CreateAdminRequest,
    principal: AdminPrincipal = Depends(super_admin),
    session: AsyncSession = Depends(get_session),
):
    result = await session.execute(select(AdminUser.id).where(AdminUser.username == body.username))
    if result.scalar_one_or_none() is not None:
        raise Conflict(f"Admin '{body.username}' already exists")

    admin = AdminUser(
        username=body.username,
        email=body.email,
        password_hash=hash_password(body.password),
        role=AdminRole(body.role),
    )
    session.add(admin)
    await session.flush()
    await log_audit(
        session,
        actor=_actor(principal),
        action=AUDIT_ADMIN_CREATED,
        target_type="admin_user",
        target_id=str(admin.id),
        metadata={"username": admin.username, "role": body.role},
    )
    await session.commit()
    await session.refresh(admin)
    return admin_user_payload(admin)


@router.patch("/admins/{admin_id}")
async def update_admin(
    admin_id: uuid.UUID,
    body: UpdateAdminRequest,
    principal: AdminPrincipal = Depends(super_admin),
    session: AsyncSession = Depends(get_session),
):
    admin = await _require_admin(session, admin_id)
    changes = body.model_dump(exclude_unset=True)

    if str(admin.id) == principal.admin_id and changes.get("role") not in (None, AdminRole.SUPER_ADMIN.value):
        raise AccessDenied("You cannot remove your own SUPER_ADMIN role")

    username = (changes.get("username") or "").strip()
    if "username" in changes and not username:
        raise InvalidPayload("Username cannot be empty")
    if username and username != admin.username:
        taken = await session.execute(select(AdminUser.id).where(AdminUser.username == username))
        if taken.scalar_one_or_none() is not None:
            raise Conflict(f"Admin '{username}' already exists")
        admin.username = username
    if changes.get("role"):
        admin.role = AdminRole(changes["role"])
    if "email" in changes:
        admin.email = changes["email"] or None
    if changes.get("password"):
        admin.password_hash = hash_password(changes["password"])

    await log_audit(
        session,
        actor=_actor(principal),
        action=AUDIT_ADMIN_UPDATED,
        target_type="admin_user",
        target_id=str(admin.id),
        metadata={"fields": sorted(changes)},
    )
    await session.commit()
    await session.refresh(admin)
    return admin_user_payload(admin)


@router.delete("/admins/{admin_id}", status_code=204)
async def delete_admin(
    admin_id: uuid.UUID,
    principal: AdminPrincipal = Depends(super_admin),
    session: AsyncSession = Depends(get_session),
):
    if str(admin_id) == principal.admin_id:
        raise AccessDenied("You cannot delete your own account")
    admin = await _require_admin(session, admin_id)
    username = admin.username
    await session.delete(admin)
    await log_audit(
        session,
        actor=_actor(principal),
        action=AUDIT_ADMIN_DELETED,
        target_type="admin_user",
        target_id=str(admin_id),
        metadata={"username": username},
    )
    await session.commit()
    logger.info(f"Admin {username} deleted by {principal.username}")


# ────────────────────────────────────────────────────────────────
# Audit Logs
# ────────────────────────────────────────────────────────────────

@router.get("/audit-logs", response_model=list[AuditLogResponse])
async def list_audit_logs(
    store_id: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    principal: AdminPrincipal = Depends(admin_viewer),
    session: AsyncSession = Depends(get_session),
):
    stmt = select(AuditLog).order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit)
    if store_id:
        stmt = stmt.where(AuditLog.store_id == store_id)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    result = await session.execute(stmt)
    return result.scalars().all()
