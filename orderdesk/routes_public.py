"""
Sign-in and slug routes.

    POST /api/auth/store-login       -> store user login (store id, slug or old slug)
    GET  /api/stores/resolve/{slug}  -> {store_id, current_slug, needs_redirect}
    GET  /api/s/{slug}/access        -> same, for the signed-in user's own store only

Clients that get needs_redirect=true must move the user to the canonical
path (dashboard_path) before showing any store content.
"""

import logging
from dataclasses import replace
from typing import Optional

from fastapi import APIRouter, Depends, Path
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import AUDIT_STORE_LOGIN, authenticate_store_user, log_audit, store_user_payload
from .core.db import get_session
from .core.errors import AccessDenied
from .core.request_context import StorePrincipal, get_store_principal
from .tenancy.context import SlugResolution, dashboard_path, resolve_store_slug

logger = logging.getLogger(__name__)

router = APIRouter(tags=["public"])


async def _resolve_path_slug(session: AsyncSession, slug: str) -> SlugResolution:
    """Resolve a URL slug; any spelling other than the current slug needs a redirect."""
    resolution = await resolve_store_slug(session, slug.lower())
    if slug != resolution.current_slug and not resolution.needs_redirect:
        resolution = replace(resolution, needs_redirect=True)
    return resolution


# ────────────────────────────────────────────────────────────────
# Request/Response Models
# ────────────────────────────────────────────────────────────────

class StoreLoginRequest(BaseModel):
    store: str = Field(..., min_length=1, max_length=100, description="8-digit store id or store slug")
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1, max_length=256)


class SlugResolutionResponse(BaseModel):
    store_id: str
    current_slug: str
    needs_redirect: bool


class SessionTokenResponse(BaseModel):
    token: str
    expires_at: str


class StoreUserResponse(BaseModel):
    id: str
    username: str
    role: str
    pin: Optional[str] = None
    store_id: str
    store_name: str
    store_slug: str
    subscription_date: Optional[str] = None
    subscription_expiry: Optional[str] = None
    last_login: Optional[str] = None


class StoreLoginResponse(BaseModel):
    success: bool = True
    user: StoreUserResponse
    store: SlugResolutionResponse
    session: SessionTokenResponse


class StoreAccessResponse(SlugResolutionResponse):
    dashboard_path: str


# ────────────────────────────────────────────────────────────────
# Endpoints
# ────────────────────────────────────────────────────────────────

@router.post("/api/auth/store-login", response_model=StoreLoginResponse)
async def store_login(
    body: StoreLoginRequest,
    session: AsyncSession = Depends(get_session),
):
    login = await authenticate_store_user(session, body.store, body.username, body.password)
    await log_audit(
        session,
        actor=f"store:{login.user.username}",
        action=AUDIT_STORE_LOGIN,
        store_id=login.store.store_id,
        target_type="store_user",
        target_id=str(login.user.id),
    )
    await session.commit()

    return StoreLoginResponse(
        user=StoreUserResponse(**store_user_payload(login.user, login.store)),
        store=SlugResolutionResponse(**login.resolution.as_dict()),
        session=SessionTokenResponse(
            token=login.session.token,
            expires_at=login.session.expires_at.isoformat(),
        ),
    )


@router.get("/api/stores/resolve/{slug}", response_model=SlugResolutionResponse)
async def resolve_slug(
    slug: str = Path(..., description="Store slug, current or historical"),
    session: AsyncSession = Depends(get_session),
):
    resolution = await _resolve_path_slug(session, slug)
    return SlugResolutionResponse(**resolution.as_dict())


@router.get("/api/s/{slug}/access", response_model=StoreAccessResponse)
async def check_store_access(
    slug: str = Path(..., description="Store slug from the dashboard URL"),
    principal: StorePrincipal = Depends(get_store_principal),
    session: AsyncSession = Depends(get_session),
):
    """Resolve the URL slug and confirm it is the signed-in user's store."""
    resolution = await _resolve_path_slug(session, slug)
    if resolution.store_id != principal.store_id:
        logger.warning(
            f"Store user {principal.username} (store {principal.store_id}) "
            f"tried to open store {resolution.store_id} via '{slug}'"
        )
        raise AccessDenied("Access denied. This store belongs to a different account.")
    return StoreAccessResponse(
        **resolution.as_dict(),
        dashboard_path=dashboard_path(resolution.current_slug),
    )
