"""
FastAPI application factory and entry point.

This module creates and configures the FastAPI application:
  1. Logging — structlog configured before anything logs
  2. Lifespan manager — handles startup/shutdown (DB table creation, cleanup)
  3. CORS middleware — allows frontend origins to make cross-origin requests
  4. Exception handlers — maps ledger errors to discriminated JSON results
  5. Router registration — mounts all API endpoint groups

Running locally:
    uvicorn ledger.main:app --reload
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ledger.config import settings
from ledger.database import engine, Base
from ledger.exceptions import register_exception_handlers
from ledger.logging_config import configure_logging
from ledger.routers import accounts, goals, movements, recurring, transactions, transfers

import ledger.models  # noqa: F401  (registers every table on Base.metadata)


configure_logging()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup:
      Creates all database tables if they don't exist.

    Shutdown:
      Disposes of the database engine, closing all connections cleanly.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("ledger_started", version=settings.APP_VERSION)
    yield
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Personal-finance ledger: accounts, transactions, transfers, goals and an audit trail",
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

register_exception_handlers(app)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(accounts.router, prefix="/accounts", tags=["Accounts"])
app.include_router(transactions.router, prefix="/transactions", tags=["Transactions"])
app.include_router(transfers.router, prefix="/transfers", tags=["Transfers"])
app.include_router(goals.router, prefix="/goals", tags=["Goals"])
app.include_router(recurring.router, prefix="/recurring", tags=["Recurring"])
app.include_router(movements.router, prefix="/movements", tags=["Movements"])


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/health", tags=["Health"])
async def health_check():
    """Liveness probe for deployment tooling."""
    return {"status": "ok", "version": settings.APP_VERSION}
