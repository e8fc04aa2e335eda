"""
Deleted store users.

Removing a store user moves the account into deleted_store_users instead of
dropping it. The archived row keeps the password hash, PIN, role and
subscription dates, so a restore brings the account back exactly as it was
(same id, same credentials). Archived rows are purged once they are older
than the configured retention period.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from .core.config import get_settings
from .core.errors import Conflict, RecordNotFound
from .models import DeletedStoreUser, Store, StoreUser, utcnow
from .tenancy.context import validate_store_id
from .tenancy.queries import store_count, store_delete, store_get, store_insert

logger = logging.getLogger(__name__)

# Columns copied between store_users and deleted_store_users
_ACCOUNT_FIELDS = (
    "username",
    "password_hash",
    "pin",
    "role",
    "subscription_date",
    "subscription_expiry",
    "last_login",
)


def retention() -> timedelta:
    return timedelta(days=get_settings().deleted_user_retention_days)


def purge_at(archived: DeletedStoreUser) -> datetime:
    return archived.deleted_at + retention()


async def archive_store_user(
    session: AsyncSession,
    store_id: str,
    user_id: uuid.UUID,
    deleted_by: str,
) -> DeletedStoreUser:
    """
    Move a store user into the archive (flushed, not committed).

    Raises:
        RecordNotFound: no such user in this store
    """
    user = await store_get(session, StoreUser, store_id, "id", user_id)
    if user is None:
        raise RecordNotFound("User not found")

    row = {field: getattr(user, field) for field in _ACCOUNT_FIELDS}
    row.update(original_user_id=user.id, user_created_at=user.created_at, deleted_by=deleted_by)
    archived = await store_insert(session, DeletedStoreUser, store_id, row)
    await store_delete(session, StoreUser, store_id, "id", user.id)

    logger.info(f"Store user {user.username} ({user.id}) archived from store {store_id} by {deleted_by}")
    return archived


async def restore_store_user(
    session: AsyncSession,
    store_id: str,
    archive_id: uuid.UUID,
) -> StoreUser:
    """
    Bring an archived user back under its original id (flushed, not committed).

    Raises:
        RecordNotFound: no such archived user in this store
        Conflict: the username was taken again in the meantime
    """
    archived = await store_get(session, DeletedStoreUser, store_id, "id", archive_id)
    if archived is None:
        raise RecordNotFound("Deleted user not found")
    if await store_count(session, StoreUser, store_id, username=archived.username):
        raise Conflict(f"Username '{archived.username}' is already in use in this store")

    row = {field: getattr(archived, field) for field in _ACCOUNT_FIELDS}
    row.update(id=archived.original_user_id, created_at=archived.user_created_at)
    user = await store_insert(session, StoreUser, store_id, row)
    await store_delete(session, DeletedStoreUser, store_id, "id", archived.id)

    logger.info(f"Store user {user.username} ({user.id}) restored in store {store_id}")
    return user


async def list_deleted_users(
    session: AsyncSession,
    store_id: Optional[str] = None,
) -> Sequence[tuple[DeletedStoreUser, Store]]:
    """Archived users (newest first) with their store, across stores unless one is given."""
    stmt = (
        select(DeletedStoreUser, Store)
        .join(Store, Store.store_id == DeletedStoreUser.store_id)
        .order_by(DeletedStoreUser.deleted_at.desc())
    )
    if store_id is not None:
        stmt = stmt.where(DeletedStoreUser.store_id == validate_store_id(store_id))
    result = await session.execute(stmt)
    return result.all()


async def purge_expired_users(session: AsyncSession, now: Optional[datetime] = None) -> int:
    """Permanently remove archived users past the retention period. Returns the count."""
    cutoff = (now or utcnow()) - retention()
    result = await session.execute(
        delete(DeletedStoreUser)
        .where(DeletedStoreUser.deleted_at < cutoff)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        logger.info(f"Purged {result.rowcount} archived store user(s) deleted before {cutoff.isoformat()}")
    return result.rowcount
