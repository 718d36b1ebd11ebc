"""
LinkVault - FastAPI Backend
Ephemeral text and file sharing with expiring, view-limited links.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import settings, validate_security_settings
from database import engine, Base
import models  # noqa: F401
from routers import files, health, shares
from services.share_lifecycle import get_share_lifecycle
from services.share_sweeper import ShareSweeper

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    print("🚀 Starting LinkVault API...")
    validate_security_settings()
    if settings.AUTO_CREATE_DB_SCHEMA:
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            print("🗄️ Database schema verified.")
        except Exception as e:
            print(f"⚠️ Database bootstrap skipped: {e}")

    lifecycle = get_share_lifecycle()
    sweeper = None
    if settings.SHARE_SWEEP_ENABLED and settings.SHARE_SWEEP_INTERVAL_MINUTES > 0:
        sweeper = ShareSweeper(lifecycle.sweep, settings.SHARE_SWEEP_INTERVAL_MINUTES * 60)
        sweeper.start()
        print(f"🧹 Expired share sweep enabled (every {settings.SHARE_SWEEP_INTERVAL_MINUTES:g} min).")
    yield
    # Shutdown
    if sweeper is not None:
        await sweeper.stop()
    await lifecycle.shutdown()
    await engine.dispose()
    print("👋 Shutting down API...")


app = FastAPI(
    title="LinkVault API",
    description="Share text and files through short links that expire",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(shares.router, prefix="/shares", tags=["Shares"])
app.include_router(files.router, prefix="/files", tags=["Files"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "LinkVault API",
        "version": "0.1.0",
        "status": "running"
    }
