import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import get_settings
from .core.db import AsyncSessionLocal, Base, engine
from .core.errors import register_exception_handlers
from .routes_admin import router as admin_router
from .routes_public import router as public_router
from .routes_store import router as store_router
from .seed import seed_super_admin


settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="OrderDesk Backend")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(public_router)
app.include_router(store_router)
app.include_router(admin_router)


@app.on_event("startup")
async def on_startup():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with AsyncSessionLocal() as session:
        await seed_super_admin(session)
    logger.info("OrderDesk backend started")


@app.get("/health")
async def healthcheck():
    return {"status": "ok"}
