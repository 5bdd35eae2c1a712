"""Pydantic schemas for customer records, their nested collections, and sync results.

Defines all structured types for the customer sync core:
- Enums: StorageLayout, PriceType, CustomerStage, CustomerCheckpoint, PropertyStatus, ClipboardKind
- Entities: ChecklistItem, Property, Meeting, Customer, ClipboardItem, ClipboardCategory
- Payloads: CustomerUpdate (partial update with full replacement arrays)
- Results: DiffResult, CollectionChange, SyncResult, MigrationReport

Stored documents use camelCase keys (``createdAt``, ``moveInDate``). Models
expose snake_case attributes with camelCase aliases and accept either form.
Unknown stored keys are kept (``extra="allow"``) so legacy fields survive a
read-modify-write cycle.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from src.estateflow.customers.ids import generate_id, now_ms


# ── Enums ───────────────────────────────────────────────────────────────────


class StorageLayout(str, Enum):
    """Where nested customer collections live in the document store."""

    HIERARCHICAL = "hierarchical"  # one sub-record per child entity
    FLATTENED = "flattened"  # inline arrays on the customer document


class PriceType(str, Enum):
    SALE = "sale"
    JEONSE = "jeonse"
    RENT = "rent"


class CustomerStage(str, Enum):
    """Customer journey stage shown as kanban columns."""

    RECEIVED = "received"
    TO_CONTACT = "to_contact"
    APPOINTMENT_CONFIRMED = "appointment_confirmed"
    MEETING_IN_PROGRESS = "meeting_in_progress"
    MEETING_DONE = "meeting_done"  # obsolete, merged into MEETING_IN_PROGRESS


class CustomerCheckpoint(str, Enum):
    """Detailed follow-up status for customers past their first meeting."""

    CONTRACT_IN_PROGRESS = "contract_in_progress"
    REBOOK_MEETING = "rebook_meeting"
    APPOINTMENT_CONFIRMED = "appointment_confirmed"
    MEETING_IN_PROGRESS = "meeting_in_progress"


class PropertyStatus(str, Enum):
    UNCHECKED = "unchecked"
    CHECKING = "checking"
    VIEWABLE = "viewable"
    VISITED = "visited"


class ClipboardKind(str, Enum):
    """The two clipboard trees kept in the settings document."""

    CONTRACT = "contract"
    PAYMENT = "payment"


# Nested collection field names as stored on the customer document.
CHECKLISTS_FIELD = "checklists"
MEETINGS_FIELD = "meetings"
CONTRACT_HISTORY_FIELD = "contractHistory"
PAYMENT_HISTORY_FIELD = "paymentHistory"

# Fields that move between sub-records and inline arrays during layout migration.
SUBCOLLECTION_FIELDS = (CHECKLISTS_FIELD, MEETINGS_FIELD)
# History lists are inline in every layout.
INLINE_ONLY_FIELDS = (CONTRACT_HISTORY_FIELD, PAYMENT_HISTORY_FIELD)
NESTED_FIELDS = SUBCOLLECTION_FIELDS + INLINE_ONLY_FIELDS

# A stored customer is migrated to the flattened layout exactly when it carries this field.
MIGRATION_MARKER = "migratedAt"

# Bookkeeping fields owned by the repository, never patched by callers.
MANAGED_FIELDS = ("id", "createdAt", "updatedAt", MIGRATION_MARKER)


def is_migrated(document: dict[str, Any]) -> bool:
    """True if the stored customer document carries the migration marker."""
    return document.get(MIGRATION_MARKER) is not None


# ── Base ────────────────────────────────────────────────────────────────────


class DocumentModel(BaseModel):
    """Base for every stored entity: camelCase aliases, tolerant of extra keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_document(self) -> dict[str, Any]:
        """Serialize to the stored (camelCase, JSON-safe) representation."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ── Entities ────────────────────────────────────────────────────────────────


class ChecklistItem(DocumentModel):
    """Checklist entry; also used for contract and payment history entries."""

    id: str = Field(default_factory=generate_id)
    text: str = ""
    created_at: int = Field(default_factory=now_ms)
    memo: str = ""


class Property(DocumentModel):
    """A property listing shown during one meeting. Photos are opaque URLs."""

    id: str = Field(default_factory=generate_id)
    raw_input: str = ""
    room_name: str = ""
    jibun: str = ""
    agency: str = ""
    agency_phone: str = ""
    photos: list[str] = Field(default_factory=list)
    parsed_text: str | None = None
    unit: str | None = None
    status: str | None = None
    visit_time: str | None = None


class Meeting(DocumentModel):
    """One meeting round. ``round`` is a dense 1..N sequence over a customer's meetings."""

    id: str = Field(default_factory=generate_id)
    round: int = Field(default=1, ge=1)
    date: str = ""
    properties: list[Property] = Field(default_factory=list)
    created_at: int = Field(default_factory=now_ms)


class Customer(DocumentModel):
    """Customer record with its nested collections expanded."""

    id: str = Field(default_factory=generate_id)
    name: str
    contact: str = ""
    move_in_date: str = ""
    price_type: str = PriceType.SALE.value
    price: str = ""
    rent_price: str | None = None
    memo: str = ""
    stage: str | None = CustomerStage.RECEIVED.value
    checkpoint: str | None = None
    is_favorite: bool = False
    favorited_at: int | None = None
    created_at: int | None = None
    updated_at: int | None = None
    migrated_at: int | None = None

    checklists: list[ChecklistItem] = Field(default_factory=list)
    meetings: list[Meeting] = Field(default_factory=list)
    contract_history: list[ChecklistItem] = Field(default_factory=list)
    payment_history: list[ChecklistItem] = Field(default_factory=list)

    def scalar_document(self) -> dict[str, Any]:
        """Stored representation without the sub-record collections."""
        data = self.to_document()
        for field in SUBCOLLECTION_FIELDS:
            data.pop(field, None)
        return data


class CustomerUpdate(BaseModel):
    """Partial update: any subset of scalar fields and/or full replacement arrays.

    Only fields the caller actually set are applied (``model_fields_set``).
    Managed fields (id, timestamps, migration marker) are ignored.
    Only ``rentPrice``, ``stage``, ``checkpoint`` and ``favoritedAt`` may be
    cleared with an explicit null.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    name: str | None = None
    contact: str | None = None
    move_in_date: str | None = None
    price_type: str | None = None
    price: str | None = None
    rent_price: str | None = None
    memo: str | None = None
    stage: str | None = None
    checkpoint: str | None = None
    is_favorite: bool | None = None
    favorited_at: int | None = None

    checklists: list[ChecklistItem] | None = None
    meetings: list[Meeting] | None = None
    contract_history: list[ChecklistItem] | None = None
    payment_history: list[ChecklistItem] | None = None

    @field_validator(
        "name", "contact", "move_in_date", "price_type", "price", "memo", "is_favorite"
    )
    @classmethod
    def _reject_null(cls, v: Any) -> Any:
        if v is None:
            raise ValueError("field cannot be cleared with null")
        return v

    def scalar_fields(self) -> dict[str, Any]:
        """Set scalar fields keyed by their stored (camelCase) names."""
        data = self.model_dump(mode="json", by_alias=True, exclude_unset=True)
        return {k: v for k, v in data.items() if k not in NESTED_FIELDS}

    def nested_fields(self) -> dict[str, list[Any]]:
        """Set replacement arrays keyed by their stored names (models, not dicts)."""
        result: dict[str, list[Any]] = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            alias = to_camel(name)
            if alias in NESTED_FIELDS and value is not None:
                result[alias] = value
        return result


class ClipboardItem(DocumentModel):
    id: str = Field(default_factory=generate_id)
    title: str = ""
    content: str = ""
    created_at: int = Field(default_factory=now_ms)


class ClipboardCategory(DocumentModel):
    """Accordion category; display order is the array order itself."""

    id: str = Field(default_factory=generate_id)
    title: str = ""
    is_expanded: bool = True
    items: list[ClipboardItem] = Field(default_factory=list)
    created_at: int = Field(default_factory=now_ms)


# ── Results ─────────────────────────────────────────────────────────────────


class DiffResult(BaseModel):
    """Operations turning one id-keyed collection into another.

    ``added`` and ``updated`` carry the new entities; ``removed`` carries ids.
    No ordering is guaranteed within any of the three lists.
    """

    added: list[Any] = Field(default_factory=list)
    updated: list[Any] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.updated or self.removed)


class CollectionChange(BaseModel):
    """Operation counts applied to one nested collection during a sync."""

    field: str
    added: int = 0
    updated: int = 0
    removed: int = 0


class SyncResult(BaseModel):
    """Outcome of one apply_update call."""

    customer_id: str
    scalar_fields: list[str] = Field(default_factory=list)
    changes: list[CollectionChange] = Field(default_factory=list)

    @property
    def total_operations(self) -> int:
        return sum(c.added + c.updated + c.removed for c in self.changes)


class MigrationReport(BaseModel):
    """Counts for a batch migration; a single bad record never aborts the run."""

    total: int = 0
    migrated: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)
