"""
Async HTTP client for the OrderDesk API.

The client plays the part of the dashboard: it signs in, keeps the result in
an explicit StoreSession, attaches the session token to every store call and
turns error envelopes back into the exception taxonomy.

Usage:
    session = StoreSession(FileSessionStorage("~/.orderdesk/session.json"))
    session.load()
    async with OrderdeskClient("https://api.example.com", session) as client:
        if not session.is_authenticated:
            await client.sign_in("acme-shop", "owner", "secret")
        customers = await client.list_records("customers", q="smith")
"""

import asyncio
import logging
from typing import Any, Optional

import httpx

from .core.errors import ERRORS_BY_CODE, BackendError, InvalidPayload, OrderdeskError
from .core.responses import ErrorCodes
from .session import SessionState, StoreLoginResult, StoreSession
from .tenancy.context import SlugResolution

logger = logging.getLogger(__name__)

STORE_RESOURCES = ("customers", "products", "orders", "statuses", "users")


def error_from_response(response: httpx.Response) -> OrderdeskError:
    """Rebuild the server-side exception from an error envelope."""
    try:
        error = response.json().get("error") or {}
    except ValueError:
        error = {}
    code = error.get("code")
    message = error.get("message") or f"HTTP {response.status_code}"
    details = error.get("details")

    if code == ErrorCodes.VALIDATION_ERROR:
        return InvalidPayload(message, details)
    error_class = ERRORS_BY_CODE.get(code, BackendError)
    return error_class(message, details)


class OrderdeskClient:
    def __init__(
        self,
        base_url: str,
        session: StoreSession,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ):
        self.session = session
        self._http = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)

    async def __aenter__(self) -> "OrderdeskClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, path: str, *, auth: bool = True, **kwargs) -> Any:
        headers = self.session.auth_headers() if auth else {}
        try:
            response = await self._http.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise BackendError(f"Request failed: {e}") from e

        if response.status_code >= 400:
            raise error_from_response(response)
        if response.status_code == 204:
            return None
        if response.headers.get("content-type", "").startswith("text/html"):
            return response.text
        return response.json()

    def _resource_path(self, resource: str, record_id: Any = None) -> str:
        if resource not in STORE_RESOURCES:
            raise ValueError(f"Unknown store resource: {resource}")
        # The tenant comes from the token; the id is still checked before any call
        self.session.require_store_id()
        path = f"/api/store/{resource}"
        return f"{path}/{record_id}" if record_id is not None else path

    # ── Session ─────────────────────────────────────────────────

    async def sign_in(self, store: str, username: str, password: str) -> StoreLoginResult:
        if self.session.state == SessionState.UNLOADED:
            self.session.load()
        data = await self._request(
            "POST",
            "/api/auth/store-login",
            auth=False,
            json={"store": store, "username": username, "password": password},
        )
        result = StoreLoginResult.from_response(data)
        self.session.sign_in(result)
        return result

    def sign_out(self) -> None:
        self.session.sign_out()

    async def resolve_slug(self, slug: str) -> SlugResolution:
        data = await self._request("GET", f"/api/stores/resolve/{slug}", auth=False)
        return SlugResolution(
            store_id=data["store_id"],
            current_slug=data["current_slug"],
            needs_redirect=data["needs_redirect"],
        )

    async def check_access(self, slug: str) -> dict:
        return await self._request("GET", f"/api/s/{slug}/access")

    # ── Scoped resources ────────────────────────────────────────

    async def list_records(self, resource: str, **params) -> list[dict]:
        params = {key: value for key, value in params.items() if value is not None}
        return await self._request("GET", self._resource_path(resource), params=params)

    async def get_record(self, resource: str, record_id: Any) -> dict:
        return await self._request("GET", self._resource_path(resource, record_id))

    async def create_record(self, resource: str, payload: dict) -> dict:
        return await self._request("POST", self._resource_path(resource), json=payload)

    async def update_record(self, resource: str, record_id: Any, patch: dict) -> dict:
        return await self._request("PATCH", self._resource_path(resource, record_id), json=patch)

    async def delete_record(self, resource: str, record_id: Any) -> None:
        await self._request("DELETE", self._resource_path(resource, record_id))

    # ── Store extras ────────────────────────────────────────────

    async def get_stats(self) -> dict:
        self.session.require_store_id()
        return await self._request("GET", "/api/store/stats")

    async def get_invoice_html(self, order_id: Any) -> str:
        return await self._request("GET", f"{self._resource_path('orders', order_id)}/invoice")

    async def get_whatsapp_link(self, order_id: Any) -> dict:
        return await self._request("GET", f"{self._resource_path('orders', order_id)}/whatsapp")

    async def load_dashboard(self) -> dict:
        """
        Fetch what the dashboard's first screen needs in one go.

        The three calls are independent and run concurrently; results are
        matched up by position, not by completion order.
        """
        stats, pending, statuses = await asyncio.gather(
            self.get_stats(),
            self.list_records("orders", status="pending"),
            self.list_records("statuses"),
        )
        return {"stats": stats, "pending_orders": pending, "statuses": statuses}
