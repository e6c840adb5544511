"""
FastAPI application entry point.
Configures routes, middleware, and lifecycle events.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm.exc import StaleDataError

from app.config import settings
from app.database import close_db, init_db
from app.exceptions import SettlementEngineError
from app.logging_config import configure_logging
from app.redis import RedisClient

from app.api.payments import router as payments_router
from app.api.wallets import router as wallets_router
from app.api.referrals import router as referrals_router
from app.api.admin.settlements import router as admin_settlements_router
from app.api.admin.analytics import router as admin_analytics_router
from app.api.webhooks.razorpay import router as razorpay_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifecycle manager."""
    configure_logging()
    logger.info(f"Starting up {settings.app_name} ({settings.app_env})...")
    if settings.auto_create_tables:
        await init_db()

    yield

    await RedisClient.close()
    await close_db()
    logger.info("Shutting down...")


app = FastAPI(
    title="Settlement Engine",
    description="Course payments, revenue split, wallets and referral commissions",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.debug,
)


@app.exception_handler(SettlementEngineError)
async def engine_exception_handler(request: Request, exc: SettlementEngineError):
    logger.info(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    content = {"status": "error", "code": exc.code, "message": exc.message}
    if exc.details:
        content["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(StaleDataError)
async def stale_data_handler(request: Request, exc: StaleDataError):
    # Optimistic version check lost to a concurrent writer
    logger.warning(f"Concurrent update on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=409,
        content={
            "status": "error",
            "code": "concurrent_update",
            "message": "Record was modified concurrently, retry the request",
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"status": "error", "message": "Internal Server Error"},
    )


origins = list(settings.cors_origins)
if settings.is_development:
    origins.append("*")

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.app_name,
        "env": settings.app_env,
    }


app.include_router(payments_router, prefix="/payments", tags=["payments"])
app.include_router(wallets_router, prefix="/wallets", tags=["wallets"])
app.include_router(referrals_router, prefix="/referrals", tags=["referrals"])

app.include_router(admin_settlements_router, prefix="/admin", tags=["admin"])
app.include_router(admin_analytics_router, prefix="/admin", tags=["admin"])

app.include_router(razorpay_router, prefix="/webhooks", tags=["webhooks"])
