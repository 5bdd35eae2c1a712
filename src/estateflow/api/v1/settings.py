"""REST API endpoints for the clipboard settings document."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from src.estateflow.api.deps import get_clipboard_service
from src.estateflow.customers.clipboard import ClipboardService
from src.estateflow.customers.schemas import ClipboardCategory, ClipboardKind

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get(
    "/clipboard/{kind}",
    response_model=list[ClipboardCategory],
    response_model_by_alias=True,
    response_model_exclude_none=True,
)
async def get_clipboard(
    kind: ClipboardKind,
    clipboard: ClipboardService = Depends(get_clipboard_service),
) -> list[ClipboardCategory]:
    """Fetch one clipboard tree (legacy lists are converted on first read)."""
    return await clipboard.get_clipboard(kind)


@router.put(
    "/clipboard/{kind}",
    response_model=list[ClipboardCategory],
    response_model_by_alias=True,
    response_model_exclude_none=True,
)
async def update_clipboard(
    kind: ClipboardKind,
    body: list[ClipboardCategory],
    clipboard: ClipboardService = Depends(get_clipboard_service),
) -> list[ClipboardCategory]:
    """Replace one clipboard tree. The array order is the display order."""
    await clipboard.update_clipboard(kind, body)
    return body
