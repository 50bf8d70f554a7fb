"""Token Economy - FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.config import settings
from app.database import init_db
from app.exceptions import LedgerError, ledger_exception_handler
from app.routers import accounts, goal_submissions, prize_requests, stats, transactions

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    # Create data directory if needed
    settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
    # Initialize database tables
    await init_db()
    yield


app = FastAPI(title=settings.APP_NAME, version="0.1.0", lifespan=lifespan)

app.add_exception_handler(LedgerError, ledger_exception_handler)

# Routers
app.include_router(transactions.router)
app.include_router(accounts.router)
app.include_router(prize_requests.router)
app.include_router(goal_submissions.router)
app.include_router(stats.router)


@app.get("/health")
async def health():
    return {"status": "ok"}
