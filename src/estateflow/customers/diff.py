"""Id-keyed collection diffing.

``diff_collections`` is the single primitive the sync coordinator applies at
every nesting level: checklist items directly under a customer, meetings
under a customer, and properties under each meeting. Entities may be pydantic
models or plain dicts; equality is decided on canonical JSON of the stored
representation, so field order and model-vs-dict never matter.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from typing import Any

from pydantic import BaseModel

from src.estateflow.customers.schemas import DiffResult, Meeting


def to_plain(entity: Any) -> dict[str, Any]:
    """Stored representation of an entity as a plain dict."""
    if isinstance(entity, BaseModel):
        return entity.model_dump(mode="json", by_alias=True, exclude_none=True)
    return dict(entity)


def entity_key(entity: Any, key: str = "id") -> str:
    if isinstance(entity, BaseModel):
        return getattr(entity, key)
    return entity[key]


def fingerprint(entity: Any, exclude: Iterable[str] = ()) -> str:
    """Canonical serialization used for the 'updated' comparison."""
    data = to_plain(entity)
    for field in exclude:
        data.pop(field, None)
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)


def diff_collections(
    old_items: Sequence[Any],
    new_items: Sequence[Any],
    *,
    key: str = "id",
    exclude: Iterable[str] = (),
) -> DiffResult:
    """Compute added / updated / removed between two same-keyed collections.

    Args:
        old_items: Current collection (typically the latest remote state).
        new_items: Desired collection.
        key: Identity field. Must be unique within each side.
        exclude: Fields ignored when deciding whether an entity changed.

    Returns:
        DiffResult; ``added``/``updated`` hold entities from ``new_items``,
        ``removed`` holds keys only present in ``old_items``.
    """
    exclude = tuple(exclude)
    old_by_key = {entity_key(item, key): item for item in old_items}
    new_by_key = {entity_key(item, key): item for item in new_items}

    result = DiffResult()
    for item_key, item in new_by_key.items():
        previous = old_by_key.get(item_key)
        if previous is None:
            result.added.append(item)
        elif fingerprint(previous, exclude) != fingerprint(item, exclude):
            result.updated.append(item)

    result.removed.extend(k for k in old_by_key if k not in new_by_key)
    return result


def apply_diff(old_items: Sequence[Any], diff: DiffResult, *, key: str = "id") -> list[Any]:
    """Apply a diff to a collection: create added, overwrite updated, delete removed.

    Surviving entities keep their relative order; added ones are appended.
    """
    replacements = {entity_key(item, key): item for item in diff.updated}
    removed = set(diff.removed)

    result = [
        replacements.get(entity_key(item, key), item)
        for item in old_items
        if entity_key(item, key) not in removed
    ]
    result.extend(diff.added)
    return result


def renumber_rounds(meetings: Sequence[Meeting]) -> list[Meeting]:
    """Return the meetings with ``round`` reassigned to 1..N in their current order."""
    return [
        meeting if meeting.round == index else meeting.model_copy(update={"round": index})
        for index, meeting in enumerate(meetings, start=1)
    ]
