"""FastAPI application entry point."""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import connections
from config import settings
from logging_config import setup_logging

setup_logging()
logger = logging.getLogger(__name__)


def add_cors(app: FastAPI, origins: list[str]) -> None:
    """Allow browser calls from ``origins``. No middleware when the list is empty."""
    if not origins:
        return
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    logger.info("CORS enabled for %s", ", ".join(origins))


app = FastAPI(
    title="Bank Connection Sync",
    description="Bank connection health, account sync and transaction import",
    version="0.1.0",
)

add_cors(app, settings.CORS_ORIGINS)

# Include API routers
app.include_router(connections.router)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}
