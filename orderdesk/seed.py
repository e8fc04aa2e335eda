import logging

from sqlalchemy import select

from .core.config import get_settings
from .models import AdminUser, AppSetting, InvoiceSettings, OrderStatus, StoreSettings
from .roles import AdminRole
from .security import hash_password
from .whatsapp import WhatsAppSettings

logger = logging.getLogger(__name__)

# (name, display_name, color, sort_order, is_default)
DEFAULT_ORDER_STATUSES = [
    ("pending", "Pending", "#f59e0b", 1, True),
    ("paid", "Paid", "#10b981", 2, False),
    ("shipped", "Shipped", "#3b82f6", 3, False),
    ("delivered", "Delivered", "#22c55e", 4, False),
    ("cancelled", "Cancelled", "#ef4444", 5, False),
    ("refunded", "Refunded", "#6b7280", 6, False),
]

WHATSAPP_SETTING_DESCRIPTIONS = {
    "whatsapp_enabled": "Show WhatsApp actions on orders",
    "default_country_code": "Country code for numbers stored without one",
    "whatsapp_template": "Order message template",
    "date_format": "Date format used in messages",
}


async def seed_default_settings_for_store(session, store_id: str) -> None:
    """Give a new store its order statuses and settings. Safe to run again."""
    settings = get_settings()

    result = await session.execute(select(OrderStatus.name).where(OrderStatus.store_id == store_id))
    existing_statuses = set(result.scalars().all())
    if not existing_statuses:
        session.add_all(
            [
                OrderStatus(
                    store_id=store_id,
                    name=name,
                    display_name=display_name,
                    color=color,
                    sort_order=sort_order,
                    is_default=is_default,
                )
                for name, display_name, color, sort_order, is_default in DEFAULT_ORDER_STATUSES
            ]
        )

    if await session.get(StoreSettings, store_id) is None:
        session.add(
            StoreSettings(
                store_id=store_id,
                language=settings.default_language,
                default_currency=settings.default_currency,
            )
        )

    result = await session.execute(select(InvoiceSettings).where(InvoiceSettings.store_id == store_id))
    if result.scalar_one_or_none() is None:
        session.add(InvoiceSettings(store_id=store_id, currency=settings.default_currency))

    result = await session.execute(select(AppSetting.key).where(AppSetting.store_id == store_id))
    existing_keys = set(result.scalars().all())
    for key, value in WhatsAppSettings().to_app_settings().items():
        if key not in existing_keys:
            session.add(
                AppSetting(
                    store_id=store_id,
                    key=key,
                    value=value,
                    description=WHATSAPP_SETTING_DESCRIPTIONS.get(key),
                )
            )

    await session.flush()
    logger.info(f"Default settings ensured for store {store_id}")


async def seed_super_admin(session) -> None:
    """Create the first SUPER_ADMIN from configuration when no admin exists yet."""
    settings = get_settings()
    if not settings.bootstrap_admin_username or not settings.bootstrap_admin_password:
        return

    result = await session.execute(select(AdminUser.id).limit(1))
    if result.scalar_one_or_none() is not None:
        return

    session.add(
        AdminUser(
            username=settings.bootstrap_admin_username,
            password_hash=hash_password(settings.bootstrap_admin_password),
            role=AdminRole.SUPER_ADMIN,
        )
    )
    await session.commit()
    logger.info(f"Bootstrap admin '{settings.bootstrap_admin_username}' created")
