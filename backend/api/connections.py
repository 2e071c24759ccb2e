"""Bank connection API endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from celery_app import celery_app
from database import get_db
from integrations.exceptions import ProviderError
from integrations.provider_registry import ProviderRegistry, get_provider_registry
from jobs.dispatcher import CeleryDispatcher, JobDispatcher
from jobs.events import CONNECTION_RECOVERY, REFRESH_CONNECTION
from models import BankConnection
from schemas.connection import (
    ConnectionDetailResponse,
    ConnectionResponse,
    ConnectionSyncResponse,
    JobQueuedResponse,
)
from services.connection_refresh_service import REFRESHABLE_STATUSES
from services.connection_sync_service import ConnectionSyncService
from services.exceptions import ProviderNotConfiguredError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/connections", tags=["connections"])


def get_registry() -> ProviderRegistry:
    """Get the provider registry (dependency for injection in tests)."""
    return get_provider_registry()


def get_dispatcher() -> JobDispatcher:
    """Get the job dispatcher (dependency for injection in tests)."""
    return CeleryDispatcher(celery_app)


def get_connection_sync_service(
    registry: ProviderRegistry = Depends(get_registry),
    dispatcher: JobDispatcher = Depends(get_dispatcher),
) -> ConnectionSyncService:
    return ConnectionSyncService(provider_registry=registry, dispatcher=dispatcher)


def _get_connection_or_404(db: Session, connection_id: str) -> BankConnection:
    connection = db.get(BankConnection, connection_id)
    if connection is None:
        raise HTTPException(status_code=404, detail=f"Connection {connection_id} not found")
    return connection


@router.get("", response_model=list[ConnectionResponse])
def list_connections(
    user_id: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """List bank connections, optionally for a single user."""
    query = db.query(BankConnection)
    if user_id:
        query = query.filter(BankConnection.user_id == user_id)
    return query.order_by(BankConnection.created_at, BankConnection.id).all()


@router.get("/{connection_id}", response_model=ConnectionDetailResponse)
def get_connection(connection_id: str, db: Session = Depends(get_db)):
    """Get a connection with its accounts."""
    return _get_connection_or_404(db, connection_id)


@router.post("/{connection_id}/sync", response_model=ConnectionSyncResponse)
def sync_connection(
    connection_id: str,
    db: Session = Depends(get_db),
    sync_service: ConnectionSyncService = Depends(get_connection_sync_service),
):
    """Run a manual sync: check the connection now and queue account syncs.

    Raises:
        HTTPException:
            - 404 Not Found: Connection does not exist
            - 409 Conflict: Connection is disabled or disconnected
            - 502 Bad Gateway: The bank provider check failed
    """
    _get_connection_or_404(db, connection_id)

    try:
        result = sync_service.sync_connection(db, connection_id, manual_sync=True)
    except ProviderError as e:
        logger.warning("Manual sync of %s failed: %s", connection_id, e.code.value)
        raise HTTPException(
            status_code=502,
            detail="The bank provider could not be reached. Please try again later.",
        )
    except ProviderNotConfiguredError:
        logger.warning("Manual sync of %s failed: provider not configured", connection_id)
        raise HTTPException(status_code=502, detail="The bank provider is not available.")

    if result.status == "skipped":
        raise HTTPException(status_code=409, detail="Connection is disabled")

    return ConnectionSyncResponse(
        connection_id=connection_id,
        status=result.status,
        accounts_synced=result.accounts_synced,
    )


@router.post("/{connection_id}/recover", response_model=JobQueuedResponse, status_code=202)
def recover_connection(
    connection_id: str,
    db: Session = Depends(get_db),
    dispatcher: JobDispatcher = Depends(get_dispatcher),
):
    """Queue a recovery attempt for a failed connection."""
    connection = _get_connection_or_404(db, connection_id)
    if not connection.is_syncable:
        raise HTTPException(status_code=409, detail="Connection is disabled")

    dispatcher.schedule(
        CONNECTION_RECOVERY,
        {
            "connection_id": connection.id,
            "provider": connection.provider,
            "access_token": connection.access_token,
            "retry_count": 0,
        },
    )
    return JobQueuedResponse(connection_id=connection.id, job=CONNECTION_RECOVERY)


@router.post("/{connection_id}/refresh", response_model=JobQueuedResponse, status_code=202)
def refresh_connection(
    connection_id: str,
    db: Session = Depends(get_db),
    dispatcher: JobDispatcher = Depends(get_dispatcher),
):
    """Queue a credential refresh."""
    connection = _get_connection_or_404(db, connection_id)
    if connection.disabled or connection.status not in REFRESHABLE_STATUSES:
        raise HTTPException(
            status_code=409,
            detail=f"Connection cannot be refreshed while {connection.status}",
        )

    dispatcher.schedule(REFRESH_CONNECTION, {"connection_id": connection.id})
    return JobQueuedResponse(connection_id=connection.id, job=REFRESH_CONNECTION)
