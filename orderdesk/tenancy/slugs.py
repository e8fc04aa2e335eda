"""
Store slug helpers: generation, validation, uniqueness and renames.

A store has exactly one current slug (stores.store_slug). Every slug it was
renamed away from is kept in store_slug_history so old links keep resolving
(with a redirect) to the store's current slug.
"""

import logging
import re
import unicodedata

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import BackendError, InvalidPayload, SlugConflict
from ..models import Store, StoreSlugHistory

logger = logging.getLogger(__name__)

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
SLUG_MAX_LENGTH = 100

FIRST_STORE_ID = 10000000
LAST_STORE_ID = 99999999


def generate_slug(text: str) -> str:
    """
    Generate a URL-safe slug from a store name.

    Examples:
        "Acme"             -> "acme"
        "Café Beauté"      -> "cafe-beaute"
        "Hair & Nails!!!"  -> "hair-nails"
        "!!!"              -> "store"
    """
    normalized = unicodedata.normalize("NFKD", text or "")
    ascii_str = normalized.encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", ascii_str.lower().strip())
    slug = slug.strip("-")[:SLUG_MAX_LENGTH].strip("-")
    return slug or "store"


def validate_slug(slug: str) -> bool:
    if not isinstance(slug, str) or len(slug) > SLUG_MAX_LENGTH:
        return False
    return SLUG_PATTERN.fullmatch(slug) is not None


async def slug_owner(session: AsyncSession, slug: str) -> str | None:
    """Return the store_id that holds ``slug`` as current or historical slug, if any."""
    result = await session.execute(select(Store.store_id).where(Store.store_slug == slug))
    store_id = result.scalar_one_or_none()
    if store_id:
        return store_id
    result = await session.execute(
        select(StoreSlugHistory.store_id).where(StoreSlugHistory.old_slug == slug)
    )
    return result.scalar_one_or_none()


async def ensure_unique_slug(session: AsyncSession, base_slug: str) -> str:
    """
    Ensure slug is unique by appending -2, -3, etc. if needed.

    Historical slugs count as taken: handing one out again would hijack old links.
    The base is shortened when needed so the suffixed slug stays within
    SLUG_MAX_LENGTH.
    """
    candidate = base_slug
    counter = 2

    while await slug_owner(session, candidate) is not None:
        suffix = f"-{counter}"
        stem = base_slug[: SLUG_MAX_LENGTH - len(suffix)].rstrip("-")
        candidate = f"{stem}{suffix}"
        counter += 1
        if counter > 1000:
            raise SlugConflict(f"Unable to generate a unique slug from '{base_slug}'")

    return candidate


async def rename_store_slug(session: AsyncSession, store: Store, new_slug: str) -> Store:
    """
    Change a store's current slug, keeping the old one resolvable.

    The old slug goes into history. If the store is taking back one of its own
    historical slugs, that history row is dropped so the slug is current again.
    Slugs held by another store (current or historical) are refused.
    """
    if not validate_slug(new_slug):
        raise InvalidPayload(f"Invalid slug: {new_slug!r}")

    if new_slug == store.store_slug:
        return store

    owner = await slug_owner(session, new_slug)
    if owner is not None and owner != store.store_id:
        raise SlugConflict(f"Slug '{new_slug}' is already in use")

    await session.execute(
        delete(StoreSlugHistory).where(
            StoreSlugHistory.store_id == store.store_id,
            StoreSlugHistory.old_slug == new_slug,
        )
    )

    old_slug = store.store_slug
    session.add(StoreSlugHistory(store_id=store.store_id, old_slug=old_slug))
    store.store_slug = new_slug
    await session.flush()

    logger.info(f"Store {store.store_id} slug renamed: {old_slug} -> {new_slug}")
    return store


async def next_store_id(session: AsyncSession) -> str:
    """Allocate the next free 8-digit store identifier."""
    result = await session.execute(select(func.max(Store.store_id)))
    current_max = result.scalar_one_or_none()
    next_value = int(current_max) + 1 if current_max else FIRST_STORE_ID
    if next_value > LAST_STORE_ID:
        raise BackendError("Store identifier space exhausted")
    return f"{next_value:08d}"
