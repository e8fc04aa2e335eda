"""
Order workflows for a single store.

Every read and write goes through the tenant-scoped helpers, so a customer,
product or status id that belongs to another store behaves exactly like an id
that does not exist.
"""

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from .core.errors import InvalidPayload, RecordNotFound
from .currencies import is_supported_currency
from .invoice import InvoiceBranding, InvoiceCustomer, InvoiceLine, InvoiceOrder
from .models import Customer, InvoiceSettings, Order, OrderItem, StoreSettings
from .tenancy.context import validate_store_id
from .tenancy.queries import (
    get_default_order_status,
    get_order_status_by_name,
    get_products_by_ids,
    list_order_items,
    max_order_sequence,
    scoped_select,
    store_delete,
    store_get,
    store_insert,
    store_update,
)

logger = logging.getLogger(__name__)

ORDER_NUMBER_PREFIX = "ORD-"


@dataclass(frozen=True)
class OrderLineInput:
    product_id: uuid.UUID
    quantity: int
    # Defaults to the product's current price
    unit_price: Optional[Decimal] = None


def format_order_number(sequence: int) -> str:
    return f"{ORDER_NUMBER_PREFIX}{sequence:06d}"


def order_totals(lines: Sequence[tuple[int, Decimal]], discount) -> tuple[Decimal, Decimal]:
    """
    (subtotal, total) for (quantity, unit_price) pairs.

    The total is the subtotal minus the discount, floored at zero.
    """
    subtotal = sum((Decimal(unit_price) * quantity for quantity, unit_price in lines), Decimal("0"))
    total = subtotal - Decimal(discount or 0)
    return subtotal, max(total, Decimal("0"))


async def next_order_number(session: AsyncSession, store_id: str) -> str:
    return format_order_number(await max_order_sequence(session, store_id) + 1)


async def _resolve_status(session: AsyncSession, store_id: str, status: Optional[str]) -> str:
    if status:
        found = await get_order_status_by_name(session, store_id, status)
        if found is None:
            raise InvalidPayload(f"Unknown order status: {status}")
        return found.name
    default = await get_default_order_status(session, store_id)
    return default.name if default else "pending"


async def _store_currency(session: AsyncSession, store_id: str) -> str:
    settings = await store_get(session, StoreSettings, store_id, "store_id", store_id)
    return settings.default_currency if settings else "USD"


async def create_order(
    session: AsyncSession,
    store_id: str,
    *,
    customer_id: uuid.UUID,
    lines: Sequence[OrderLineInput],
    discount: Decimal = Decimal("0"),
    currency: Optional[str] = None,
    status: Optional[str] = None,
    notes: Optional[str] = None,
    shipping: Optional[dict[str, Any]] = None,
) -> tuple[Order, list[OrderItem]]:
    """
    Create an order with its items (flushed, not committed).

    Raises:
        InvalidPayload: no lines, bad quantity or discount, unknown currency
            or status, or a customer/product that is not in this store
    """
    store_id = validate_store_id(store_id)
    if not lines:
        raise InvalidPayload("An order needs at least one item")
    if any(line.quantity < 1 for line in lines):
        raise InvalidPayload("Item quantities must be at least 1")
    if Decimal(discount or 0) < 0:
        raise InvalidPayload("Discount cannot be negative")
    if currency and not is_supported_currency(currency):
        raise InvalidPayload(f"Unsupported currency: {currency}")

    customer = await store_get(session, Customer, store_id, "id", customer_id)
    if customer is None:
        raise InvalidPayload("Customer not found in this store")

    products = await get_products_by_ids(session, store_id, [line.product_id for line in lines])
    missing = [str(line.product_id) for line in lines if line.product_id not in products]
    if missing:
        raise InvalidPayload("Product(s) not found in this store", details={"product_ids": missing})

    priced = [
        (line, Decimal(line.unit_price) if line.unit_price is not None else products[line.product_id].price)
        for line in lines
    ]
    _, total = order_totals([(line.quantity, price) for line, price in priced], discount)

    row = {
        "order_number": await next_order_number(session, store_id),
        "customer_id": customer.id,
        "status": await _resolve_status(session, store_id, status),
        "currency": (currency or await _store_currency(session, store_id)).upper(),
        "discount": Decimal(discount or 0),
        "total_amount": total,
        "notes": notes,
    }
    row.update(shipping or {})
    order = await store_insert(session, Order, store_id, row)

    items = []
    for line, price in priced:
        items.append(
            await store_insert(
                session,
                OrderItem,
                store_id,
                {
                    "order_id": order.id,
                    "product_id": line.product_id,
                    "quantity": line.quantity,
                    "unit_price": price,
                    "total_price": price * line.quantity,
                },
            )
        )

    logger.info(f"Order {order.order_number} created in store {store_id} ({len(items)} items, total {total})")
    return order, items


async def update_order(
    session: AsyncSession,
    store_id: str,
    order_id: uuid.UUID,
    patch: dict[str, Any],
) -> Order:
    """Apply a patch to an order; a new status must exist for the store."""
    patch = dict(patch)
    if patch.get("status"):
        patch["status"] = await _resolve_status(session, store_id, patch["status"])
    if "discount" in patch:
        existing = await store_get(session, Order, store_id, "id", order_id)
        if existing is None:
            raise RecordNotFound("Order not found")
        discount = Decimal(patch["discount"] or 0)
        if discount < 0:
            raise InvalidPayload("Discount cannot be negative")
        items = await list_order_items(session, store_id, existing.id)
        _, total = order_totals([(item.quantity, item.unit_price) for item, _ in items], discount)
        patch["discount"] = discount
        patch["total_amount"] = total

    order = await store_update(session, Order, store_id, "id", order_id, patch)
    if order is None:
        raise RecordNotFound("Order not found")
    return order


async def delete_order(session: AsyncSession, store_id: str, order_id: uuid.UUID) -> None:
    order = await store_get(session, Order, store_id, "id", order_id)
    if order is None:
        raise RecordNotFound("Order not found")
    await session.execute(
        delete(OrderItem).where(OrderItem.store_id == store_id, OrderItem.order_id == order.id)
    )
    await store_delete(session, Order, store_id, "id", order.id)
    logger.info(f"Order {order.order_number} deleted from store {store_id}")


async def load_invoice(
    session: AsyncSession,
    store_id: str,
    order_id: uuid.UUID,
) -> tuple[InvoiceOrder, list[InvoiceLine], InvoiceBranding]:
    """Collect everything the invoice template needs for one order."""
    order = await store_get(session, Order, store_id, "id", order_id)
    if order is None:
        raise RecordNotFound("Order not found")
    customer = await store_get(session, Customer, store_id, "id", order.customer_id)
    if customer is None:
        raise RecordNotFound("Customer not found")

    items = await list_order_items(session, store_id, order.id)
    result = await session.execute(scoped_select(InvoiceSettings, store_id))
    settings = result.scalar_one_or_none()

    invoice_order = InvoiceOrder(
        order_number=order.order_number,
        created_at=order.created_at,
        currency=order.currency,
        discount=order.discount,
        notes=order.notes,
        customer=InvoiceCustomer(
            first_name=customer.first_name,
            last_name=customer.last_name,
            phone=customer.phone,
            address_line1=customer.address_line1,
            address_line2=customer.address_line2,
            city=customer.city,
            country=customer.country,
        ),
    )
    lines = [
        InvoiceLine(
            description=product.name,
            quantity=item.quantity,
            unit_price=item.unit_price,
            total_price=item.total_price,
        )
        for item, product in items
    ]
    return invoice_order, lines, InvoiceBranding.from_settings(settings)
