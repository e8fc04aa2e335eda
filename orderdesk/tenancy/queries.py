"""
Tenant-scoped query helpers.

These functions provide safe, tenant-isolated database access.
ALL reads and writes of store data go through these helpers; every statement
they build carries ``store_id == <validated tenant id>``.

Rules enforced here:
    - the tenant id is validated (8 ASCII digits) before it becomes a filter
    - inserts stamp the tenant id, overwriting any store_id in the payload
    - updates and deletes filter on primary key AND tenant id, so a key that
      belongs to another store matches nothing
    - database failures surface as BackendError; nothing is retried

Usage:
    from orderdesk.tenancy.queries import scoped_select, store_insert, store_update

    stmt = scoped_select("customers", ctx.store_id).where(Customer.city == "Berlin")
    customer = await store_insert(session, "customers", ctx.store_id, payload)
    updated = await store_update(session, "customers", ctx.store_id, "id", customer_id, patch)
"""

import logging
import uuid
from typing import Any, Optional, Sequence, Type, Union

from sqlalchemy import Select, delete, func, inspect, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.types import Uuid

from ..core.db import Base
from ..core.errors import BackendError, InvalidPayload
from ..models import (
    AppSetting,
    Customer,
    DeletedStoreUser,
    InvoiceSettings,
    Order,
    OrderItem,
    OrderStatus,
    Product,
    StoreSettings,
    StoreUser,
)
from .context import validate_store_id

logger = logging.getLogger(__name__)

# Every table whose rows carry a store_id
SCOPED_MODELS: dict[str, Type[Base]] = {
    model.__tablename__: model
    for model in (
        Customer,
        Product,
        Order,
        OrderItem,
        OrderStatus,
        StoreSettings,
        InvoiceSettings,
        AppSetting,
        StoreUser,
        DeletedStoreUser,
    )
}

ScopedTable = Union[str, Type[Base]]

# Marker for a key value that cannot match any row (e.g. "abc" for a UUID column)
_NO_MATCH = object()


# ────────────────────────────────────────────────────────────────
# Internals
# ────────────────────────────────────────────────────────────────

def scoped_model(table: ScopedTable) -> Type[Base]:
    """Map a table name (or model) to its model, refusing tables without a store_id."""
    if isinstance(table, str):
        model = SCOPED_MODELS.get(table)
    else:
        model = table if table in SCOPED_MODELS.values() else None
    if model is None:
        raise InvalidPayload(f"Table {table!r} is not store-scoped")
    return model


def _column_keys(model: Type[Base]) -> set[str]:
    return {attr.key for attr in inspect(model).column_attrs}


def _clean_payload(model: Type[Base], row: dict[str, Any], drop: set[str]) -> dict[str, Any]:
    unknown = set(row) - _column_keys(model)
    if unknown:
        raise InvalidPayload(
            f"Unknown column(s) for {model.__tablename__}: {', '.join(sorted(unknown))}"
        )
    return {key: value for key, value in row.items() if key not in drop}


def _key_column(model: Type[Base], pk: str):
    if pk not in _column_keys(model):
        raise InvalidPayload(f"Unknown key column for {model.__tablename__}: {pk}")
    return getattr(model, pk)


def _coerce_key(column, value: Any) -> Any:
    if isinstance(column.type, Uuid) and not isinstance(value, uuid.UUID):
        try:
            return uuid.UUID(str(value))
        except ValueError:
            return _NO_MATCH
    return value


async def _execute(session: AsyncSession, stmt):
    try:
        return await session.execute(stmt)
    except SQLAlchemyError as e:
        logger.error(f"Scoped statement failed: {e}")
        raise BackendError("Backend request failed") from e


async def _flush(session: AsyncSession) -> None:
    try:
        await session.flush()
    except SQLAlchemyError as e:
        logger.error(f"Scoped flush failed: {e}")
        raise BackendError("Backend request failed") from e


# ────────────────────────────────────────────────────────────────
# Composable Query Helpers
# ────────────────────────────────────────────────────────────────

def tenant_filter(table: ScopedTable, store_id: str):
    """
    Return the ``store_id == :store_id`` clause for a scoped table.

    Usage:
        stmt = select(Product).where(tenant_filter("products", ctx.store_id), Product.is_active.is_(True))
    """
    model = scoped_model(table)
    return model.store_id == validate_store_id(store_id)


def scoped_select(table: ScopedTable, store_id: str, *columns) -> Select:
    """
    Create a SELECT statement pre-filtered by store_id.

    Columns may be given as attribute names or column expressions; without
    columns the whole entity is selected.
    """
    model = scoped_model(table)
    clause = tenant_filter(model, store_id)
    if columns:
        targets = [getattr(model, c) if isinstance(c, str) else c for c in columns]
        return select(*targets).where(clause)
    return select(model).where(clause)


async def store_insert(
    session: AsyncSession,
    table: ScopedTable,
    store_id: str,
    row: dict[str, Any],
):
    """
    Insert ``row`` for the store and return the new entity (flushed, not committed).

    A store_id inside ``row`` is ignored in favour of the validated argument.
    """
    model = scoped_model(table)
    store_id = validate_store_id(store_id)
    data = _clean_payload(model, row, drop=set())

    forged = data.get("store_id")
    if forged is not None and forged != store_id:
        logger.warning(
            f"Ignoring store_id={forged!r} in {model.__tablename__} payload; using session store {store_id}"
        )
    data["store_id"] = store_id

    entity = model(**data)
    session.add(entity)
    await _flush(session)
    return entity


async def store_get(
    session: AsyncSession,
    table: ScopedTable,
    store_id: str,
    pk: str,
    id: Any,
):
    """Fetch one row by key, only if it belongs to the store."""
    model = scoped_model(table)
    column = _key_column(model, pk)
    key = _coerce_key(column, id)
    stmt = scoped_select(model, store_id)
    if key is _NO_MATCH:
        return None
    result = await _execute(
        session,
        stmt.where(column == key).execution_options(populate_existing=True),
    )
    return result.scalar_one_or_none()


async def store_update(
    session: AsyncSession,
    table: ScopedTable,
    store_id: str,
    pk: str,
    id: Any,
    data: dict[str, Any],
):
    """
    Update the row matching key AND store; return it, or None when nothing matched.

    ``store_id`` and the key column are dropped from the patch: a row can never
    be moved to another store or re-keyed through this helper.
    """
    model = scoped_model(table)
    store_id = validate_store_id(store_id)
    column = _key_column(model, pk)
    key = _coerce_key(column, id)
    patch = _clean_payload(model, data, drop={"store_id", pk})
    if key is _NO_MATCH:
        return None

    if patch:
        stmt = (
            update(model)
            .where(column == key, model.store_id == store_id)
            .values(**patch)
            .execution_options(synchronize_session="evaluate")
        )
        result = await _execute(session, stmt)
        if result.rowcount == 0:
            return None

    return await store_get(session, model, store_id, pk, key)


async def store_delete(
    session: AsyncSession,
    table: ScopedTable,
    store_id: str,
    pk: str,
    id: Any,
) -> int:
    """Delete the row matching key AND store. Returns the number of rows removed."""
    model = scoped_model(table)
    store_id = validate_store_id(store_id)
    column = _key_column(model, pk)
    key = _coerce_key(column, id)
    if key is _NO_MATCH:
        return 0

    stmt = (
        delete(model)
        .where(column == key, model.store_id == store_id)
        .execution_options(synchronize_session="evaluate")
    )
    result = await _execute(session, stmt)
    return result.rowcount


def _apply_filters(model: Type[Base], stmt, filters: dict[str, Any]):
    for name, value in filters.items():
        stmt = stmt.where(_key_column(model, name) == value)
    return stmt


async def store_list(
    session: AsyncSession,
    table: ScopedTable,
    store_id: str,
    order_by=None,
    limit: Optional[int] = None,
    **filters: Any,
) -> Sequence:
    """List the store's rows, optionally filtered by column equality."""
    model = scoped_model(table)
    stmt = _apply_filters(model, scoped_select(model, store_id), filters)
    if order_by is not None:
        stmt = stmt.order_by(order_by)
    if limit is not None:
        stmt = stmt.limit(limit)
    result = await _execute(session, stmt)
    return result.scalars().all()


async def store_count(
    session: AsyncSession,
    table: ScopedTable,
    store_id: str,
    **filters: Any,
) -> int:
    model = scoped_model(table)
    stmt = _apply_filters(model, scoped_select(model, store_id, func.count()).select_from(model), filters)
    result = await _execute(session, stmt)
    return result.scalar_one()


# ────────────────────────────────────────────────────────────────
# Customer Queries (Tenant-Scoped)
# ────────────────────────────────────────────────────────────────

def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


async def search_customers(
    session: AsyncSession,
    store_id: str,
    query: Optional[str] = None,
) -> Sequence[Customer]:
    """List customers, optionally matching name, email or phone (case-insensitive)."""
    stmt = scoped_select(Customer, store_id)
    if query and query.strip():
        pattern = f"%{_escape_like(query.strip())}%"
        stmt = stmt.where(
            or_(
                Customer.first_name.ilike(pattern, escape="\\"),
                Customer.last_name.ilike(pattern, escape="\\"),
                Customer.email.ilike(pattern, escape="\\"),
                Customer.phone.ilike(pattern, escape="\\"),
            )
        )
    result = await _execute(session, stmt.order_by(Customer.created_at.desc()))
    return result.scalars().all()


# ────────────────────────────────────────────────────────────────
# Product Queries (Tenant-Scoped)
# ────────────────────────────────────────────────────────────────

async def get_products_by_ids(
    session: AsyncSession,
    store_id: str,
    product_ids: Sequence[uuid.UUID],
) -> dict[uuid.UUID, Product]:
    """Get multiple products by ID, scoped to store, keyed by ID."""
    if not product_ids:
        return {}
    result = await _execute(
        session,
        scoped_select(Product, store_id).where(Product.id.in_(list(product_ids))),
    )
    return {product.id: product for product in result.scalars().all()}


# ────────────────────────────────────────────────────────────────
# Order Queries (Tenant-Scoped)
# ────────────────────────────────────────────────────────────────

async def list_order_items(
    session: AsyncSession,
    store_id: str,
    order_id: uuid.UUID,
) -> Sequence[tuple[OrderItem, Product]]:
    """Items of an order with their products, both scoped to store."""
    result = await _execute(
        session,
        select(OrderItem, Product)
        .join(Product, Product.id == OrderItem.product_id)
        .where(
            OrderItem.store_id == validate_store_id(store_id),
            Product.store_id == store_id,
            OrderItem.order_id == order_id,
        )
        .order_by(OrderItem.created_at),
    )
    return result.all()


async def list_orders_with_customers(
    session: AsyncSession,
    store_id: str,
    status: Optional[str] = None,
    limit: int = 200,
) -> Sequence[tuple[Order, Customer]]:
    stmt = (
        select(Order, Customer)
        .join(Customer, Customer.id == Order.customer_id)
        .where(Order.store_id == validate_store_id(store_id), Customer.store_id == store_id)
    )
    if status:
        stmt = stmt.where(Order.status == status)
    result = await _execute(session, stmt.order_by(Order.created_at.desc()).limit(limit))
    return result.all()


async def max_order_sequence(session: AsyncSession, store_id: str) -> int:
    """Highest numeric suffix among the store's order numbers (0 when none)."""
    result = await _execute(session, scoped_select(Order, store_id, "order_number"))
    highest = 0
    for (order_number,) in result.all():
        digits = "".join(ch for ch in order_number if ch.isdigit())
        if digits:
            highest = max(highest, int(digits))
    return highest


# ────────────────────────────────────────────────────────────────
# Order Status Queries (Tenant-Scoped)
# ────────────────────────────────────────────────────────────────

async def get_order_status_by_name(
    session: AsyncSession,
    store_id: str,
    name: str,
) -> Optional[OrderStatus]:
    result = await _execute(
        session,
        scoped_select(OrderStatus, store_id).where(OrderStatus.name == name),
    )
    return result.scalar_one_or_none()


async def get_default_order_status(
    session: AsyncSession,
    store_id: str,
) -> Optional[OrderStatus]:
    result = await _execute(
        session,
        scoped_select(OrderStatus, store_id)
        .where(OrderStatus.is_default.is_(True))
        .limit(1),
    )
    return result.scalar_one_or_none()


# ────────────────────────────────────────────────────────────────
# Key/Value Settings Queries (Tenant-Scoped)
# ────────────────────────────────────────────────────────────────

async def get_app_settings(session: AsyncSession, store_id: str) -> dict[str, Optional[str]]:
    result = await _execute(session, scoped_select(AppSetting, store_id))
    return {row.key: row.value for row in result.scalars().all()}


async def put_app_setting(
    session: AsyncSession,
    store_id: str,
    key: str,
    value: Optional[str],
    description: Optional[str] = None,
) -> AppSetting:
    """Insert or update one key for the store."""
    result = await _execute(
        session,
        scoped_select(AppSetting, store_id).where(AppSetting.key == key),
    )
    setting = result.scalar_one_or_none()
    if setting is None:
        row = {"key": key, "value": value}
        if description is not None:
            row["description"] = description
        return await store_insert(session, AppSetting, store_id, row)
    return await store_update(session, AppSetting, store_id, "id", setting.id, {"value": value})
