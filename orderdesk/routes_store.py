"""
Store API: everything a signed-in store user does with their own store's data.

The tenant always comes from the session token (never from the URL or the
request body), and every query goes through the tenant-scoped helpers.

Roles:
    VIEWER       -> read
    DATA_ENTRY   -> create/update customers, products, orders
    STORE_ADMIN  -> delete, statuses, settings, users

Endpoints (prefix /api/store):
    GET/POST          /customers            GET/PATCH/DELETE /customers/{id}
    GET/POST          /products             GET/PATCH/DELETE /products/{id}
    GET/POST          /orders               GET/PATCH/DELETE /orders/{id}
    GET               /orders/{id}/invoice  GET              /orders/{id}/whatsapp
    GET               /stats
    GET/POST          /statuses             PATCH/DELETE     /statuses/{id}
    GET/PUT           /settings             GET/PUT          /invoice-settings
    GET/PUT           /whatsapp-settings
    GET/POST          /users                DELETE           /users/{id}
"""

import logging
import uuid
from dataclasses import asdict
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import (
    AUDIT_SETTINGS_UPDATED,
    AUDIT_USER_CREATED,
    AUDIT_USER_DELETED,
    log_audit,
    store_user_payload,
)
from .core.db import get_session
from .core.errors import AccessDenied, Conflict, InvalidPayload, RecordNotFound
from .core.request_context import StorePrincipal, get_store_principal, require_store_role
from .currencies import currency_options, is_supported_currency
from .invoice import render_invoice_html
from .models import (
    Customer,
    InvoiceSettings,
    Order,
    OrderItem,
    OrderStatus,
    Product,
    Store,
    StoreSettings,
    StoreUser,
)
from .orders import OrderLineInput, create_order, delete_order, load_invoice, update_order
from .roles import StoreRole, parse_store_role
from .security import hash_password
from .tenancy.queries import (
    get_app_settings,
    get_order_status_by_name,
    list_order_items,
    list_orders_with_customers,
    put_app_setting,
    scoped_select,
    search_customers,
    store_count,
    store_delete,
    store_get,
    store_insert,
    store_list,
    store_update,
)
from .user_archive import archive_store_user
from .whatsapp import TEMPLATE_MAX_LENGTH, DATE_FORMATS, WhatsAppSettings, build_order_link

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/store", tags=["store"])

SUPPORTED_LANGUAGES = ("en", "ar")

can_read = get_store_principal
can_write = require_store_role(StoreRole.DATA_ENTRY)
can_admin = require_store_role(StoreRole.STORE_ADMIN)


def _patch(body: BaseModel, required: tuple[str, ...] = ()) -> dict[str, Any]:
    """Fields the client actually sent; required columns may not be set to null."""
    data = body.model_dump(exclude_unset=True)
    nulled = [name for name in required if name in data and data[name] is None]
    if nulled:
        raise InvalidPayload(f"Field(s) cannot be null: {', '.join(nulled)}")
    return data


# ────────────────────────────────────────────────────────────────
# Customers
# ────────────────────────────────────────────────────────────────

class CustomerCreate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(default="", max_length=100)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=32)
    address_line1: Optional[str] = Field(None, max_length=255)
    address_line2: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    postal_code: Optional[str] = Field(None, max_length=20)
    country: Optional[str] = Field(None, max_length=100)

    @field_validator("first_name")
    @classmethod
    def validate_first_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("First name cannot be empty or whitespace")
        return v.strip()


class CustomerUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=32)
    address_line1: Optional[str] = Field(None, max_length=255)
    address_line2: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    postal_code: Optional[str] = Field(None, max_length=20)
    country: Optional[str] = Field(None, max_length=100)


class CustomerResponse(BaseModel):
    id: uuid.UUID
    store_id: str
    first_name: str
    last_name: str
    email: Optional[str]
    phone: Optional[str]
    address_line1: Optional[str]
    address_line2: Optional[str]
    city: Optional[str]
    state: Optional[str]
    postal_code: Optional[str]
    country: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


@router.get("/customers", response_model=list[CustomerResponse])
async def list_customers(
    q: Optional[str] = Query(None, description="Search name, email or phone"),
    principal: StorePrincipal = Depends(can_read),
    session: AsyncSession = Depends(get_session),
):
    return await search_customers(session, principal.store_id, q)


@router.post("/customers", response_model=CustomerResponse, status_code=201)
async def create_customer(
    body: CustomerCreate,
    principal: StorePrincipal = Depends(can_write),
    session: AsyncSession = Depends(get_session),
):
    customer = await store_insert(session, Customer, principal.store_id, body.model_dump())
    await session.commit()
    await session.refresh(customer)
    return customer


@router.get("/customers/{customer_id}", response_model=CustomerResponse)
async def get_customer(
    customer_id: uuid.UUID,
    principal: StorePrincipal = Depends(can_read),
    session: AsyncSession = Depends(get_session),
):
    customer = await store_get(session, Customer, principal.store_id, "id", customer_id)
    if customer is None:
        raise RecordNotFound("Customer not found")
    return customer


@router.patch("/customers/{customer_id}", response_model=CustomerResponse)
async def update_customer(
    customer_id: uuid.UUID,
    body: CustomerUpdate,
    principal: StorePrincipal = Depends(can_write),
    session: AsyncSession = Depends(get_session),
):
    patch = _patch(body, required=("first_name", "last_name"))
    customer = await store_update(session, Customer, principal.store_id, "id", customer_id, patch)
    if customer is None:
        raise RecordNotFound("Customer not found")
    await session.commit()
    await session.refresh(customer)
    return customer


@router.delete("/customers/{customer_id}", status_code=204)
async def delete_customer(
    customer_id: uuid.UUID,
    principal: StorePrincipal = Depends(can_admin),
    session: AsyncSession = Depends(get_session),
):
    if await store_count(session, Order, principal.store_id, customer_id=customer_id):
        raise Conflict("Customer has orders and cannot be deleted")
    if not await store_delete(session, Customer, principal.store_id, "id", customer_id):
        raise RecordNotFound("Customer not found")
    await session.commit()


# ────────────────────────────────────────────────────────────────
# Products
# ────────────────────────────────────────────────────────────────

class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    sku: Optional[str] = Field(None, max_length=100)
    category: Optional[str] = Field(None, max_length=100)
    price: Decimal = Field(default=Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    stock_quantity: int = Field(default=0, ge=0)
    image_url: Optional[str] = Field(None, max_length=500)
    is_active: bool = True


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    sku: Optional[str] = Field(None, max_length=100)
    category: Optional[str] = Field(None, max_length=100)
    price: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=2)
    stock_quantity: Optional[int] = Field(None, ge=0)
    image_url: Optional[str] = Field(None, max_length=500)
    is_active: Optional[bool] = None


class ProductResponse(BaseModel):
    id: uuid.UUID
    store_id: str
    name: str
    description: Optional[str]
    sku: Optional[str]
    category: Optional[str]
    price: float
    stock_quantity: int
    image_url: Optional[str]
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


@router.get("/products", response_model=list[ProductResponse])
async def list_products(
    active_only: bool = Query(False),
    principal: StorePrincipal = Depends(can_read),
    session: AsyncSession = Depends(get_session),
):
    filters = {"is_active": True} if active_only else {}
    return await store_list(session, Product, principal.store_id, order_by=Product.name, **filters)


@router.post("/products", response_model=ProductResponse, status_code=201)
async def create_product(
    body: ProductCreate,
    principal: StorePrincipal = Depends(can_write),
    session: AsyncSession = Depends(get_session),
):
    product = await store_insert(session, Product, principal.store_id, body.model_dump())
    await session.commit()
    await session.refresh(product)
    return product


@router.get("/products/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: uuid.UUID,
    principal: StorePrincipal = Depends(can_read),
    session: AsyncSession = Depends(get_session),
):
    product = await store_get(session, Product, principal.store_id, "id", product_id)
    if product is None:
        raise RecordNotFound("Product not found")
    return product


@router.patch("/products/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: uuid.UUID,
    body: ProductUpdate,
    principal: StorePrincipal = Depends(can_write),
    session: AsyncSession = Depends(get_session),
):
    patch = _patch(body, required=("name", "price", "stock_quantity", "is_active"))
    product = await store_update(session, Product, principal.store_id, "id", product_id, patch)
    if product is None:
        raise RecordNotFound("Product not found")
    await session.commit()
    await session.refresh(product)
    return product


@router.delete("/products/{product_id}", status_code=204)
async def delete_product(
    product_id: uuid.UUID,
    principal: StorePrincipal = Depends(can_admin),
    session: AsyncSession = Depends(get_session),
):
    if await store_count(session, OrderItem, principal.store_id, product_id=product_id):
        raise Conflict("Product is used by orders; deactivate it instead")
    if not await store_delete(session, Product, principal.store_id, "id", product_id):
        raise RecordNotFound("Product not found")
    await session.commit()


# ────────────────────────────────────────────────────────────────
# Orders
# ────────────────────────────────────────────────────────────────

class OrderItemCreate(BaseModel):
    product_id: uuid.UUID
    quantity: int = Field(..., ge=1)
    unit_price: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=2)


class ShippingFields(BaseModel):
    shipping_address_line1: Optional[str] = Field(None, max_length=255)
    shipping_address_line2: Optional[str] = Field(None, max_length=255)
    shipping_city: Optional[str] = Field(None, max_length=100)
    shipping_state: Optional[str] = Field(None, max_length=100)
    shipping_postal_code: Optional[str] = Field(None, max_length=20)
    shipping_country: Optional[str] = Field(None, max_length=100)


class OrderCreate(ShippingFields):
    customer_id: uuid.UUID
    items: list[OrderItemCreate] = Field(..., min_length=1)
    discount: Decimal = Field(default=Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    status: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None


class OrderUpdate(ShippingFields):
    status: Optional[str] = Field(None, max_length=50)
    discount: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=2)
    notes: Optional[str] = None


class OrderItemResponse(BaseModel):
    id: uuid.UUID
    product_id: uuid.UUID
    product_name: str
    quantity: int
    unit_price: float
    total_price: float


class OrderResponse(BaseModel):
    id: uuid.UUID
    store_id: str
    order_number: str
    customer_id: uuid.UUID
    status: str
    currency: str
    discount: float
    total_amount: float
    notes: Optional[str]
    shipping_address_line1: Optional[str]
    shipping_address_line2: Optional[str]
    shipping_city: Optional[str]
    shipping_state: Optional[str]
    shipping_postal_code: Optional[str]
    shipping_country: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class OrderListItem(OrderResponse):
    customer_name: str


class OrderDetailResponse(OrderResponse):
    customer: CustomerResponse
    items: list[OrderItemResponse]


async def _order_detail(session: AsyncSession, store_id: str, order: Order) -> OrderDetailResponse:
    customer = await store_get(session, Customer, store_id, "id", order.customer_id)
    rows = await list_order_items(session, store_id, order.id)
    items = [
        OrderItemResponse(
            id=item.id,
            product_id=item.product_id,
            product_name=product.name,
            quantity=item.quantity,
            unit_price=item.unit_price,
            total_price=item.total_price,
        )
        for item, product in rows
    ]
    base = OrderResponse.model_validate(order).model_dump()
    return OrderDetailResponse(
        **base,
        customer=CustomerResponse.model_validate(customer),
        items=items,
    )


@router.get("/orders", response_model=list[OrderListItem])
async def list_orders(
    status: Optional[str] = Query(None),
    limit: int = Query(200, ge=1, le=1000),
    principal: StorePrincipal = Depends(can_read),
    session: AsyncSession = Depends(get_session),
):
    rows = await list_orders_with_customers(session, principal.store_id, status=status, limit=limit)
    return [
        OrderListItem(
            **OrderResponse.model_validate(order).model_dump(),
            customer_name=f"{customer.first_name} {customer.last_name}".strip(),
        )
        for order, customer in rows
    ]


@router.post("/orders", response_model=OrderDetailResponse, status_code=201)
async def create_order_endpoint(
    body: OrderCreate,
    principal: StorePrincipal = Depends(can_write),
    session: AsyncSession = Depends(get_session),
):
    shipping = body.model_dump(include=set(ShippingFields.model_fields), exclude_none=True)
    order, _ = await create_order(
        session,
        principal.store_id,
        customer_id=body.customer_id,
        lines=[
            OrderLineInput(product_id=item.product_id, quantity=item.quantity, unit_price=item.unit_price)
            for item in body.items
        ],
        discount=body.discount,
        currency=body.currency,
        status=body.status,
        notes=body.notes,
        shipping=shipping,
    )
    await session.commit()
    await session.refresh(order)
    return await _order_detail(session, principal.store_id, order)


@router.get("/orders/{order_id}", response_model=OrderDetailResponse)
async def get_order(
    order_id: uuid.UUID,
    principal: StorePrincipal = Depends(can_read),
    session: AsyncSession = Depends(get_session),
):
    order = await store_get(session, Order, principal.store_id, "id", order_id)
    if order is None:
        raise RecordNotFound("Order not found")
    return await _order_detail(session, principal.store_id, order)


@router.patch("/orders/{order_id}", response_model=OrderDetailResponse)
async def update_order_endpoint(
    order_id: uuid.UUID,
    body: OrderUpdate,
    principal: StorePrincipal = Depends(can_write),
    session: AsyncSession = Depends(get_session),
):
    order = await update_order(session, principal.store_id, order_id, _patch(body, required=("status",)))
    await session.commit()
    await session.refresh(order)
    return await _order_detail(session, principal.store_id, order)


@router.delete("/orders/{order_id}", status_code=204)
async def delete_order_endpoint(
    order_id: uuid.UUID,
    principal: StorePrincipal = Depends(can_admin),
    session: AsyncSession = Depends(get_session),
):
    await delete_order(session, principal.store_id, order_id)
    await session.commit()


@router.get("/orders/{order_id}/invoice", response_class=HTMLResponse)
async def get_order_invoice(
    order_id: uuid.UUID,
    principal: StorePrincipal = Depends(can_read),
    session: AsyncSession = Depends(get_session),
):
    invoice_order, lines, branding = await load_invoice(session, principal.store_id, order_id)
    return HTMLResponse(render_invoice_html(invoice_order, lines, branding))


class WhatsAppLinkResponse(BaseModel):
    phone: Optional[str]
    message: str
    url: Optional[str]


@router.get("/orders/{order_id}/whatsapp", response_model=WhatsAppLinkResponse)
async def get_order_whatsapp_link(
    order_id: uuid.UUID,
    principal: StorePrincipal = Depends(can_read),
    session: AsyncSession = Depends(get_session),
):
    order = await store_get(session, Order, principal.store_id, "id", order_id)
    if order is None:
        raise RecordNotFound("Order not found")
    customer = await store_get(session, Customer, principal.store_id, "id", order.customer_id)
    settings = WhatsAppSettings.from_app_settings(await get_app_settings(session, principal.store_id))
    return build_order_link(order, customer, settings)


# ────────────────────────────────────────────────────────────────
# Dashboard Stats
# ────────────────────────────────────────────────────────────────

class StatsResponse(BaseModel):
    total_orders: int
    pending_orders: int
    cancelled_orders: int
    total_customers: int
    total_products: int


@router.get("/stats", response_model=StatsResponse)
async def get_stats(
    principal: StorePrincipal = Depends(can_read),
    session: AsyncSession = Depends(get_session),
):
    result = await session.execute(
        scoped_select(Order, principal.store_id, Order.status, func.count()).group_by(Order.status)
    )
    by_status = {status: count for status, count in result.all()}
    return StatsResponse(
        total_orders=sum(by_status.values()),
        pending_orders=by_status.get("pending", 0),
        cancelled_orders=by_status.get("cancelled", 0),
        total_customers=await store_count(session, Customer, principal.store_id),
        total_products=await store_count(session, Product, principal.store_id),
    )


# ────────────────────────────────────────────────────────────────
# Order Statuses
# ────────────────────────────────────────────────────────────────

class OrderStatusCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50, pattern=r"^[a-z0-9_]+$")
    display_name: str = Field(..., min_length=1, max_length=100)
    color: Optional[str] = Field(None, max_length=20)
    sort_order: int = 0
    is_active: bool = True
    is_default: bool = False


class OrderStatusUpdate(BaseModel):
    display_name: Optional[str] = Field(None, min_length=1, max_length=100)
    color: Optional[str] = Field(None, max_length=20)
    sort_order: Optional[int] = None
    is_active: Optional[bool] = None
    is_default: Optional[bool] = None


class OrderStatusResponse(BaseModel):
    id: uuid.UUID
    name: str
    display_name: str
    color: Optional[str]
    sort_order: int
    is_active: bool
    is_default: bool

    model_config = {"from_attributes": True}


async def _clear_default_status(session: AsyncSession, store_id: str) -> None:
    await session.execute(
        update(OrderStatus)
        .where(OrderStatus.store_id == store_id, OrderStatus.is_default.is_(True))
        .values(is_default=False)
        .execution_options(synchronize_session="fetch")
    )


@router.get("/statuses", response_model=list[OrderStatusResponse])
async def list_statuses(
    principal: StorePrincipal = Depends(can_read),
    session: AsyncSession = Depends(get_session),
):
    return await store_list(session, OrderStatus, principal.store_id, order_by=OrderStatus.sort_order)


@router.post("/statuses", response_model=OrderStatusResponse, status_code=201)
async def create_status(
    body: OrderStatusCreate,
    principal: StorePrincipal = Depends(can_admin),
    session: AsyncSession = Depends(get_session),
):
    if await get_order_status_by_name(session, principal.store_id, body.name):
        raise Conflict(f"Order status '{body.name}' already exists")
    if body.is_default:
        await _clear_default_status(session, principal.store_id)
    status = await store_insert(session, OrderStatus, principal.store_id, body.model_dump())
    await session.commit()
    await session.refresh(status)
    return status


@router.patch("/statuses/{status_id}", response_model=OrderStatusResponse)
async def update_status(
    status_id: uuid.UUID,
    body: OrderStatusUpdate,
    principal: StorePrincipal = Depends(can_admin),
    session: AsyncSession = Depends(get_session),
):
    patch = _patch(body, required=("display_name", "sort_order", "is_active", "is_default"))
    existing = await store_get(session, OrderStatus, principal.store_id, "id", status_id)
    if existing is None:
        raise RecordNotFound("Order status not found")
    # The default only moves by promoting another status
    if existing.is_default and patch.get("is_default") is False:
        raise Conflict("A store needs a default order status. Make another status the default instead.")
    if patch.get("is_default"):
        await _clear_default_status(session, principal.store_id)
    status = await store_update(session, OrderStatus, principal.store_id, "id", status_id, patch)
    await session.commit()
    await session.refresh(status)
    return status


@router.delete("/statuses/{status_id}", status_code=204)
async def delete_status(
    status_id: uuid.UUID,
    principal: StorePrincipal = Depends(can_admin),
    session: AsyncSession = Depends(get_session),
):
    status = await store_get(session, OrderStatus, principal.store_id, "id", status_id)
    if status is None:
        raise RecordNotFound("Order status not found")
    if status.is_default:
        raise Conflict("The default order status cannot be deleted")
    if await store_count(session, Order, principal.store_id, status=status.name):
        raise Conflict(f"Order status '{status.name}' is used by orders")
    await store_delete(session, OrderStatus, principal.store_id, "id", status.id)
    await session.commit()


# ────────────────────────────────────────────────────────────────
# Store Settings
# ────────────────────────────────────────────────────────────────

class StoreSettingsUpdate(BaseModel):
    language: Optional[str] = None
    default_currency: Optional[str] = None
    logo_url: Optional[str] = Field(None, max_length=500)

    @field_validator("language")
    @classmethod
    def validate_language(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in SUPPORTED_LANGUAGES:
            raise ValueError(f"Language must be one of: {', '.join(SUPPORTED_LANGUAGES)}")
        return v

    @field_validator("default_currency")
    @classmethod
    def validate_currency(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not is_supported_currency(v):
            raise ValueError(f"Unsupported currency: {v}")
        return v.upper() if v else v


class StoreSettingsResponse(BaseModel):
    store_id: str
    language: str
    default_currency: str
    logo_url: Optional[str]
    updated_at: datetime

    model_config = {"from_attributes": True}


async def _get_or_create_store_settings(session: AsyncSession, store_id: str) -> StoreSettings:
    settings = await store_get(session, StoreSettings, store_id, "store_id", store_id)
    if settings is None:
        settings = await store_insert(session, StoreSettings, store_id, {})
        await session.commit()
        await session.refresh(settings)
    return settings


@router.get("/settings", response_model=StoreSettingsResponse)
async def get_store_settings(
    principal: StorePrincipal = Depends(can_read),
    session: AsyncSession = Depends(get_session),
):
    return await _get_or_create_store_settings(session, principal.store_id)


@router.get("/currencies")
async def list_currencies(principal: StorePrincipal = Depends(can_read)):
    return currency_options()


@router.put("/settings", response_model=StoreSettingsResponse)
async def update_store_settings(
    body: StoreSettingsUpdate,
    principal: StorePrincipal = Depends(can_admin),
    session: AsyncSession = Depends(get_session),
):
    await _get_or_create_store_settings(session, principal.store_id)
    patch = _patch(body, required=("language", "default_currency"))
    settings = await store_update(session, StoreSettings, principal.store_id, "store_id", principal.store_id, patch)
    await log_audit(
        session,
        actor=f"store:{principal.username}",
        action=AUDIT_SETTINGS_UPDATED,
        store_id=principal.store_id,
        target_type="store_settings",
        target_id=principal.store_id,
        metadata={"fields": sorted(patch)},
    )
    await session.commit()
    await session.refresh(settings)
    return settings


class InvoiceSettingsBody(BaseModel):
    company_name: Optional[str] = Field(None, max_length=255)
    phone_number: Optional[str] = Field(None, max_length=32)
    facebook_account: Optional[str] = Field(None, max_length=255)
    instagram_account: Optional[str] = Field(None, max_length=255)
    snapchat_account: Optional[str] = Field(None, max_length=255)
    address_line1: Optional[str] = Field(None, max_length=255)
    address_line2: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=100)
    country: Optional[str] = Field(None, max_length=100)
    currency: Optional[str] = None
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    logo_url: Optional[str] = Field(None, max_length=500)

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not is_supported_currency(v):
            raise ValueError(f"Unsupported currency: {v}")
        return v.upper() if v else v


class InvoiceSettingsResponse(InvoiceSettingsBody):
    tax_rate: Optional[float] = None

    model_config = {"from_attributes": True}


@router.get("/invoice-settings", response_model=InvoiceSettingsResponse)
async def get_invoice_settings(
    principal: StorePrincipal = Depends(can_read),
    session: AsyncSession = Depends(get_session),
):
    result = await session.execute(scoped_select(InvoiceSettings, principal.store_id))
    settings = result.scalar_one_or_none()
    if settings is None:
        return InvoiceSettingsResponse()
    return settings


@router.put("/invoice-settings", response_model=InvoiceSettingsResponse)
async def put_invoice_settings(
    body: InvoiceSettingsBody,
    principal: StorePrincipal = Depends(can_admin),
    session: AsyncSession = Depends(get_session),
):
    result = await session.execute(scoped_select(InvoiceSettings, principal.store_id))
    existing = result.scalar_one_or_none()
    data = _patch(body)
    if existing is None:
        settings = await store_insert(session, InvoiceSettings, principal.store_id, data)
    else:
        settings = await store_update(session, InvoiceSettings, principal.store_id, "id", existing.id, data)
    await log_audit(
        session,
        actor=f"store:{principal.username}",
        action=AUDIT_SETTINGS_UPDATED,
        store_id=principal.store_id,
        target_type="invoice_settings",
        target_id=str(settings.id),
        metadata={"fields": sorted(data)},
    )
    await session.commit()
    await session.refresh(settings)
    return settings


class WhatsAppSettingsBody(BaseModel):
    whatsapp_enabled: bool = False
    default_country_code: str = Field("+974", pattern=r"^\+\d{1,4}$")
    whatsapp_template: str = Field(..., min_length=1, max_length=TEMPLATE_MAX_LENGTH)
    date_format: str = "DD/MM/YYYY"

    @field_validator("date_format")
    @classmethod
    def validate_date_format(cls, v: str) -> str:
        if v not in DATE_FORMATS:
            raise ValueError(f"Date format must be one of: {', '.join(DATE_FORMATS)}")
        return v


@router.get("/whatsapp-settings", response_model=WhatsAppSettingsBody)
async def get_whatsapp_settings(
    principal: StorePrincipal = Depends(can_read),
    session: AsyncSession = Depends(get_session),
):
    settings = WhatsAppSettings.from_app_settings(await get_app_settings(session, principal.store_id))
    return WhatsAppSettingsBody(**asdict(settings))


@router.put("/whatsapp-settings", response_model=WhatsAppSettingsBody)
async def put_whatsapp_settings(
    body: WhatsAppSettingsBody,
    principal: StorePrincipal = Depends(can_admin),
    session: AsyncSession = Depends(get_session),
):
    settings = WhatsAppSettings(**body.model_dump())
    for key, value in settings.to_app_settings().items():
        await put_app_setting(session, principal.store_id, key, value)
    await log_audit(
        session,
        actor=f"store:{principal.username}",
        action=AUDIT_SETTINGS_UPDATED,
        store_id=principal.store_id,
        target_type="whatsapp_settings",
        target_id=principal.store_id,
    )
    await session.commit()
    return body


# ────────────────────────────────────────────────────────────────
# Store Users
# ────────────────────────────────────────────────────────────────

class StoreUserCreate(BaseModel):
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


@router.get("/users")
async def list_store_users(
    principal: StorePrincipal = Depends(can_admin),
    session: AsyncSession = Depends(get_session),
):
    store = await session.get(Store, principal.store_id)
    users = await store_list(session, StoreUser, principal.store_id, order_by=StoreUser.username)
    return [store_user_payload(user, store) for user in users]


@router.post("/users", status_code=201)
async def create_store_user(
    body: StoreUserCreate,
    principal: StorePrincipal = Depends(can_admin),
    session: AsyncSession = Depends(get_session),
):
    if await store_count(session, StoreUser, principal.store_id, username=body.username):
        raise Conflict(f"Username '{body.username}' already exists in this store")

    user = await store_insert(
        session,
        StoreUser,
        principal.store_id,
        {
            "username": body.username,
            "password_hash": hash_password(body.password),
            "pin": body.pin,
            "role": StoreRole(body.role),
            "subscription_date": body.subscription_date,
            "subscription_expiry": body.subscription_expiry,
        },
    )
    await log_audit(
        session,
        actor=f"store:{principal.username}",
        action=AUDIT_USER_CREATED,
        store_id=principal.store_id,
        target_type="store_user",
        target_id=str(user.id),
        metadata={"username": user.username, "role": body.role},
    )
    await session.commit()
    await session.refresh(user)
    store = await session.get(Store, principal.store_id)
    return store_user_payload(user, store)


@router.delete("/users/{user_id}", status_code=204)
async def delete_store_user(
    user_id: uuid.UUID,
    principal: StorePrincipal = Depends(can_admin),
    session: AsyncSession = Depends(get_session),
):
    if str(user_id) == principal.user_id:
        raise AccessDenied("You cannot delete your own account")
    actor = f"store:{principal.username}"
    archived = await archive_store_user(session, principal.store_id, user_id, deleted_by=actor)
    await log_audit(
        session,
        actor=actor,
        action=AUDIT_USER_DELETED,
        store_id=principal.store_id,
        target_type="store_user",
        target_id=str(user_id),
        metadata={"username": archived.username, "archive_id": str(archived.id)},
    )
    await session.commit()
