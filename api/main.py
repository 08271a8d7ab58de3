"""Discount service API: FastAPI entry point.

Registers middleware, routers, and lifecycle hooks. The discount router is
mounted under /api/discounts/.
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import RequestContextMiddleware
from core.database import close_db, init_db
from core.observability.logging_setup import setup_logging

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS", "http://localhost:3000,http://localhost:3001"
).split(",")
AUTO_CREATE_TABLES = os.getenv("DB_AUTO_CREATE", "false").lower() == "true"
VERSION = "0.1.0"


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown hooks."""
    setup_logging()
    if AUTO_CREATE_TABLES:
        await init_db()

    logger.info("Discount service API started")
    yield
    logger.info("Discount service API shutting down")
    await close_db()


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Discount Stacking Service",
    description="Discount classification, conflict resolution, stacking and compliance audit",
    version=VERSION,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Tenant + requester context
app.add_middleware(RequestContextMiddleware)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

from discounts.router import router as discounts_router  # noqa: E402

app.include_router(discounts_router, prefix="/api/discounts", tags=["Discounts"])


# ---------------------------------------------------------------------------
# Health & root
# ---------------------------------------------------------------------------

@app.get("/health")
async def health():
    return {"status": "healthy", "version": VERSION}


@app.get("/")
async def root():
    return {
        "name": "Discount Stacking Service",
        "version": VERSION,
        "docs": "/docs",
    }
