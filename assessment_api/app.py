"""Main FastAPI application with modularized routes."""
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from assessment_api.config import LOG_LEVEL
from assessment_api.database import init_db
from assessment_api.routes import auth, maintenance, reports, sessions
from core.logging_setup import setup_console_logging

setup_console_logging(LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Initialize database on startup."""
    await init_db()
    yield


app = FastAPI(title="Assessment Reporting API", lifespan=lifespan)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/api/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


# Include routers
app.include_router(auth.router)
app.include_router(reports.router)
app.include_router(sessions.router)
app.include_router(maintenance.router)
