"""FastAPI dependency helpers for services held on ``app.state``.

Services are built by the application lifespan. A missing service means the
app was started without it, which every endpoint reports as 503.
"""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request, status

from src.estateflow.customers.clipboard import ClipboardService
from src.estateflow.customers.migration import LayoutMigrator
from src.estateflow.customers.sync import SyncCoordinator


def _get_state(request: Request, name: str, label: str) -> Any:
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} not initialized",
        )
    return service


def get_coordinator(request: Request) -> SyncCoordinator:
    """Retrieve the SyncCoordinator from app.state, 503 if not available."""
    return _get_state(request, "sync_coordinator", "Customer sync")


def get_clipboard_service(request: Request) -> ClipboardService:
    """Retrieve the ClipboardService from app.state, 503 if not available."""
    return _get_state(request, "clipboard_service", "Clipboard settings")


def get_migrator(request: Request) -> LayoutMigrator:
    """Retrieve the LayoutMigrator from app.state, 503 if not available."""
    return _get_state(request, "layout_migrator", "Migrations")
