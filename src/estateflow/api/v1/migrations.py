"""Operator endpoints for storage migrations.

Each run scans every customer and returns the batch report; per-record
failures are reported in the body, never as an HTTP error.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from src.estateflow.api.deps import get_migrator
from src.estateflow.customers.migration import LayoutMigrator
from src.estateflow.customers.schemas import MigrationReport

router = APIRouter(prefix="/migrations", tags=["migrations"])


@router.post("/layout", response_model=MigrationReport)
async def migrate_layout(migrator: LayoutMigrator = Depends(get_migrator)) -> MigrationReport:
    """Flatten every unmigrated customer into inline arrays."""
    return await migrator.migrate_all()


@router.post("/layout/rollback", response_model=MigrationReport)
async def rollback_layout(migrator: LayoutMigrator = Depends(get_migrator)) -> MigrationReport:
    """Re-expand every migrated customer into sub-records."""
    return await migrator.rollback_all()


@router.post("/stages", response_model=MigrationReport)
async def remap_stages(migrator: LayoutMigrator = Depends(get_migrator)) -> MigrationReport:
    """Merge obsolete customer stages into their replacements."""
    return await migrator.remap_stages()


@router.post("/properties", response_model=MigrationReport)
async def upgrade_properties(migrator: LayoutMigrator = Depends(get_migrator)) -> MigrationReport:
    """Upgrade legacy property records to the current shape."""
    return await migrator.upgrade_property_shape()
