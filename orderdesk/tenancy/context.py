"""
Multi-tenancy context module for OrderDesk.

A tenant (store) is identified by an 8-digit store_id. This module owns:
    - validate_store_id: the gate every tenant id passes before it is used
      as a query filter
    - StoreContext: the immutable "current tenant" handed to scoped queries
    - resolve_store_slug: slug -> tenant, with redirect detection for slugs
      the store has been renamed away from
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import InvalidTenantId, StoreNotFound
from ..models import Store, StoreSlugHistory
from .slugs import validate_slug


logger = logging.getLogger(__name__)

# ASCII digits only: \d would also accept other Unicode decimal digits
STORE_ID_PATTERN = re.compile(r"[0-9]{8}")


def validate_store_id(store_id: Optional[str]) -> str:
    """
    Return ``store_id`` unchanged if it is exactly 8 ASCII digits.

    Raises:
        InvalidTenantId: for None, non-strings and any other shape
    """
    if not isinstance(store_id, str) or STORE_ID_PATTERN.fullmatch(store_id) is None:
        raise InvalidTenantId("Invalid store_id in session")
    return store_id


class StoreResolutionSource(str, Enum):
    """How the store context was determined."""

    URL_SLUG = "url_slug"                # Current slug in the URL path
    HISTORICAL_SLUG = "historical_slug"  # Renamed-away slug in the URL path
    STORE_ID = "store_id"                # 8-digit id typed at login
    SESSION_TOKEN = "session_token"      # store_id claim of a verified session token


@dataclass(frozen=True)
class StoreContext:
    """
    Immutable context representing the current tenant for a request.

    This object MUST be established before any tenant-specific database operation.
    """

    store_id: str
    store_slug: Optional[str] = None
    store_name: Optional[str] = None
    source: StoreResolutionSource = StoreResolutionSource.SESSION_TOKEN

    def __post_init__(self):
        validate_store_id(self.store_id)


@dataclass(frozen=True)
class SlugResolution:
    """Result of resolving a path slug. Produced per request, never stored."""

    store_id: str
    current_slug: str
    needs_redirect: bool

    def as_dict(self) -> dict:
        return {
            "store_id": self.store_id,
            "current_slug": self.current_slug,
            "needs_redirect": self.needs_redirect,
        }


# ────────────────────────────────────────────────────────────────
# Resolution Functions
# ────────────────────────────────────────────────────────────────

async def get_store_by_id(session: AsyncSession, store_id: str) -> Optional[Store]:
    validate_store_id(store_id)
    result = await session.execute(select(Store).where(Store.store_id == store_id))
    return result.scalar_one_or_none()


async def find_store_by_slug(session: AsyncSession, slug: str) -> tuple[Optional[Store], bool]:
    """
    Find the store owning ``slug``.

    Returns:
        (store, is_historical); (None, False) when no store ever used the slug
    """
    result = await session.execute(select(Store).where(Store.store_slug == slug))
    store = result.scalar_one_or_none()
    if store:
        return store, False

    result = await session.execute(
        select(Store)
        .join(StoreSlugHistory, StoreSlugHistory.store_id == Store.store_id)
        .where(StoreSlugHistory.old_slug == slug)
        .order_by(StoreSlugHistory.changed_at.desc())
        .limit(1)
    )
    store = result.scalar_one_or_none()
    if store:
        return store, True
    return None, False


async def resolve_store_slug(session: AsyncSession, slug: str) -> SlugResolution:
    """
    Resolve a path slug to its store.

    Returns:
        SlugResolution with needs_redirect=False for the current slug, or
        needs_redirect=True and the new current_slug for a historical slug

    Raises:
        StoreNotFound: malformed slug or no store ever used it
    """
    if not validate_slug(slug):
        raise StoreNotFound(f"Store not found: {slug}")

    store, is_historical = await find_store_by_slug(session, slug)
    if store is None:
        raise StoreNotFound(f"Store not found: {slug}")

    if is_historical:
        logger.info(f"Historical slug '{slug}' -> store {store.store_id} now at '{store.store_slug}'")

    return SlugResolution(
        store_id=store.store_id,
        current_slug=store.store_slug,
        needs_redirect=is_historical,
    )


async def resolve_store_input(
    session: AsyncSession,
    store_input: str,
) -> Optional[tuple[Store, StoreResolutionSource]]:
    """
    Resolve what a user typed in the login form's store field.

    Accepts the 8-digit store id, the current slug or a historical slug.
    Returns None when nothing matches.
    """
    value = (store_input or "").strip()
    if STORE_ID_PATTERN.fullmatch(value):
        store = await get_store_by_id(session, value)
        return (store, StoreResolutionSource.STORE_ID) if store else None

    value = value.lower()
    if not validate_slug(value):
        return None
    store, is_historical = await find_store_by_slug(session, value)
    if store is None:
        return None
    source = StoreResolutionSource.HISTORICAL_SLUG if is_historical else StoreResolutionSource.URL_SLUG
    return store, source


# ────────────────────────────────────────────────────────────────
# URL Path Helpers
# ────────────────────────────────────────────────────────────────

def extract_slug_from_path(path: str) -> Optional[str]:
    """
    Extract store slug from URL path.

    Expected patterns:
        /store/<slug>/...   -> returns <slug>  (dashboard routes)
        /api/s/<slug>/...   -> returns <slug>
    """
    match = re.match(r"^(?:/store|/api/s)/([a-z0-9-]+)(?:/|$)", path)
    if match:
        return match.group(1)
    return None


def dashboard_path(slug: str) -> str:
    return f"/store/{slug}/dashboard"


__all__ = [
    "StoreContext",
    "StoreResolutionSource",
    "SlugResolution",
    "validate_store_id",
    "get_store_by_id",
    "find_store_by_slug",
    "resolve_store_slug",
    "resolve_store_input",
    "extract_slug_from_path",
    "dashboard_path",
    "STORE_ID_PATTERN",
]
