"""
Multi-tenancy package for OrderDesk.

This package provides tenant isolation primitives for the multi-tenant architecture.

Modules:
    context: store id validation, StoreContext and slug resolution
    slugs: slug generation, uniqueness, renames and store id allocation
    queries: Tenant-scoped query helpers
"""

from .context import (
    StoreContext,
    StoreResolutionSource,
    SlugResolution,
    validate_store_id,
    get_store_by_id,
    find_store_by_slug,
    resolve_store_slug,
    resolve_store_input,
    extract_slug_from_path,
    dashboard_path,
    STORE_ID_PATTERN,
)

from .slugs import (
    generate_slug,
    validate_slug,
    ensure_unique_slug,
    rename_store_slug,
    next_store_id,
)

from .queries import (
    # Generic scoped builder
    SCOPED_MODELS,
    scoped_model,
    scoped_select,
    tenant_filter,
    store_insert,
    store_get,
    store_update,
    store_delete,
    store_list,
    store_count,
    # Domain queries
    search_customers,
    get_products_by_ids,
    list_order_items,
    list_orders_with_customers,
    max_order_sequence,
    get_order_status_by_name,
    get_default_order_status,
    get_app_settings,
    put_app_setting,
)

__all__ = [
    # Context
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
    # Slugs
    "generate_slug",
    "validate_slug",
    "ensure_unique_slug",
    "rename_store_slug",
    "next_store_id",
    # Query helpers
    "SCOPED_MODELS",
    "scoped_model",
    "scoped_select",
    "tenant_filter",
    "store_insert",
    "store_get",
    "store_update",
    "store_delete",
    "store_list",
    "store_count",
    "search_customers",
    "get_products_by_ids",
    "list_order_items",
    "list_orders_with_customers",
    "max_order_sequence",
    "get_order_status_by_name",
    "get_default_order_status",
    "get_app_settings",
    "put_app_setting",
]
