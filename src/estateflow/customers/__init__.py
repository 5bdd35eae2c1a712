"""Customer sync core -- schemas, diffing, sync, migrations, and live views.

Provides:
- CustomerRepository: customer-level adapter over a DocumentStore, for both
  storage layouts (HIERARCHICAL sub-records, FLATTENED inline arrays)
- SyncCoordinator: fetch-latest, merge, diff, apply for partial updates
- LayoutMigrator: idempotent layout migration with rollback, field remapping,
  and the legacy property upgrade
- CustomerSession: optimistic pending view over confirmed remote snapshots
- ClipboardService: the contract/payment clipboard settings document
"""

from src.estateflow.customers.clipboard import ClipboardService
from src.estateflow.customers.diff import apply_diff, diff_collections, renumber_rounds
from src.estateflow.customers.exceptions import CustomerNotFoundError, MeetingNotFoundError
from src.estateflow.customers.migration import LayoutMigrator
from src.estateflow.customers.repository import CustomerRepository
from src.estateflow.customers.schemas import (
    ChecklistItem,
    Customer,
    CustomerUpdate,
    Meeting,
    Property,
    StorageLayout,
)
from src.estateflow.customers.session import CustomerSession
from src.estateflow.customers.sync import SyncCoordinator

__all__ = [
    "ChecklistItem",
    "ClipboardService",
    "Customer",
    "CustomerNotFoundError",
    "CustomerRepository",
    "CustomerSession",
    "CustomerUpdate",
    "LayoutMigrator",
    "Meeting",
    "MeetingNotFoundError",
    "Property",
    "StorageLayout",
    "SyncCoordinator",
    "apply_diff",
    "diff_collections",
    "renumber_rounds",
]
