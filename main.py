from contextlib import asynccontextmanager
import asyncio
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from wifi_portal.api import auth_router, package_router, session_router, admin_router
from wifi_portal.config import settings
from wifi_portal.db.database import AsyncSessionLocal, create_tables
from wifi_portal.services.auth import ensure_default_admin
from wifi_portal.services.packages import seed_default_packages
from wifi_portal.services.payments import build_gateway
from wifi_portal.services.purchase import PurchaseFlow
from wifi_portal.services.session_reaper import session_reaper_loop
from wifi_portal.services.session_registry import SessionRegistry
from wifi_portal.services.window_store import SqlWindowStore

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_tables()
    async with AsyncSessionLocal() as db:
        await seed_default_packages(db)
        await ensure_default_admin(db)

    registry = SessionRegistry(
        store=SqlWindowStore(AsyncSessionLocal),
        tick_seconds=settings.CLOCK_TICK_SECONDS
    )
    await registry.restore()
    gateway = build_gateway()
    app.state.registry = registry
    app.state.purchase_flow = PurchaseFlow(registry, gateway, timeout_seconds=settings.PAYMENT_TIMEOUT_SECONDS)
    logger.info(f"Portal ready (payment gateway: {gateway.name})")

    reaper = asyncio.create_task(session_reaper_loop(registry, settings.SESSION_REAP_INTERVAL_SECONDS))
    try:
        yield
    finally:
        reaper.cancel()
        try:
            await reaper
        except asyncio.CancelledError:
            pass
        await registry.shutdown()
        logger.info("Portal stopped")


app = FastAPI(title="WiFi Portal API", version="1.0.0", lifespan=lifespan)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(package_router)
app.include_router(session_router)
app.include_router(admin_router)


@app.get("/")
def read_root():
    return {"message": "WiFi Portal API"}

@app.get("/health")
def health_check():
    return {"status": "healthy"}
