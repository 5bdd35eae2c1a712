"""Clipboard settings -- two category trees in one well-known settings document.

The ``settings/clipboard`` document holds a ``contract`` and a ``payment``
field, each an ordered array of ClipboardCategory. Each field is always
written whole; display order is the array order.

Stored arrays written by older clients are flat lists of checklist-shaped
entries (``{id, text, memo, createdAt}``). ``get_clipboard`` recognizes them
by a ``text`` key on the first element, wraps them in a single category and
writes the converted tree back once.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from typing import Any

import structlog

from src.estateflow.customers.ids import generate_id, now_ms
from src.estateflow.customers.schemas import ClipboardCategory, ClipboardItem, ClipboardKind
from src.estateflow.store.adapter import DocumentStore, Subscription
from src.estateflow.store.exceptions import DocumentNotFoundError

logger = structlog.get_logger(__name__)

CLIPBOARD_DOCUMENT_ID = "clipboard"
LEGACY_CATEGORY_TITLE = "Imported items"


def is_legacy_clipboard(raw: Sequence[Any]) -> bool:
    return bool(raw) and isinstance(raw[0], dict) and "text" in raw[0]


def convert_legacy_clipboard(raw: Sequence[dict[str, Any]]) -> list[ClipboardCategory]:
    """Wrap a legacy flat list into one expanded category, keeping item ids."""
    items = [
        ClipboardItem(
            id=entry.get("id") or generate_id(),
            title=entry.get("text") or "",
            content=entry.get("memo") or "",
            created_at=entry.get("createdAt") or now_ms(),
        )
        for entry in raw
    ]
    return [ClipboardCategory(title=LEGACY_CATEGORY_TITLE, is_expanded=True, items=items)]


def _parse(raw: Sequence[Any]) -> list[ClipboardCategory]:
    if is_legacy_clipboard(raw):
        return convert_legacy_clipboard(raw)
    return [ClipboardCategory.model_validate(category) for category in raw]


def move_category(
    categories: Sequence[ClipboardCategory], from_index: int, to_index: int
) -> list[ClipboardCategory]:
    """Return a copy with one category spliced out and reinserted at ``to_index``."""
    result = list(categories)
    moved = result.pop(from_index)
    result.insert(to_index, moved)
    return result


def move_item(
    categories: Sequence[ClipboardCategory],
    category_id: str,
    from_index: int,
    to_index: int,
) -> list[ClipboardCategory]:
    """Return a copy with one item reordered inside the named category.

    Raises:
        KeyError: If no category has ``category_id``.
    """
    result = list(categories)
    for position, category in enumerate(result):
        if category.id == category_id:
            items = list(category.items)
            items.insert(to_index, items.pop(from_index))
            result[position] = category.model_copy(update={"items": items})
            return result
    raise KeyError(category_id)


class ClipboardService:
    """Reads and writes the clipboard trees in the settings collection.

    Args:
        store: DocumentStore backend.
        collection: Settings collection name.
    """

    def __init__(self, store: DocumentStore, collection: str = "settings") -> None:
        self._store = store
        self._path = f"{collection}/{CLIPBOARD_DOCUMENT_ID}"

    @property
    def path(self) -> str:
        return self._path

    async def get_clipboard(self, kind: ClipboardKind | str) -> list[ClipboardCategory]:
        """Fetch one clipboard tree, converting and persisting a legacy list first."""
        kind = ClipboardKind(kind)
        document = await self._store.get(self._path) or {}
        raw = document.get(kind.value) or []

        if is_legacy_clipboard(raw):
            categories = convert_legacy_clipboard(raw)
            await self.update_clipboard(kind, categories)
            logger.info("clipboard.legacy_converted", kind=kind.value, items=len(raw))
            return categories

        return [ClipboardCategory.model_validate(category) for category in raw]

    async def update_clipboard(
        self, kind: ClipboardKind | str, categories: Sequence[ClipboardCategory]
    ) -> None:
        """Replace one clipboard tree; the other tree is left untouched."""
        kind = ClipboardKind(kind)
        payload = {kind.value: [category.to_document() for category in categories]}
        try:
            await self._store.update(self._path, payload)
        except DocumentNotFoundError:
            await self._store.set(self._path, payload)
        logger.debug("clipboard.updated", kind=kind.value, categories=len(categories))

    async def subscribe(
        self,
        kind: ClipboardKind | str,
        callback: Callable[[list[ClipboardCategory]], Awaitable[None]],
    ) -> Subscription:
        """Push one clipboard tree on every change of the settings document.

        Legacy lists are converted for the subscriber only; ``get_clipboard``
        is what persists the conversion.
        """
        kind = ClipboardKind(kind)

        async def _on_snapshot(document: dict[str, Any] | None) -> None:
            await callback(_parse((document or {}).get(kind.value) or []))

        return await self._store.subscribe_document(self._path, _on_snapshot)
