#!/usr/bin/env python3
"""Customer storage migration runner.

Usage:
    uv run python scripts/migrate_layout.py migrate
    uv run python scripts/migrate_layout.py rollback
    uv run python scripts/migrate_layout.py remap-stage
    uv run python scripts/migrate_layout.py upgrade-properties

Runs one batch migration over every customer in the configured document
store and prints the report as JSON. Records that fail are counted and
listed; re-running retries them and skips records already done.

Reads STORE_BACKEND, REDIS_URL and the collection names from environment or .env file.
Exits non-zero if any record failed.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys

# Ensure project root is on sys.path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))

import structlog  # noqa: E402

from src.estateflow.api.middleware.logging import configure_structlog  # noqa: E402
from src.estateflow.config import StoreBackend, get_settings  # noqa: E402
from src.estateflow.core.redis import close_redis  # noqa: E402
from src.estateflow.customers.migration import LayoutMigrator  # noqa: E402
from src.estateflow.customers.repository import CustomerRepository  # noqa: E402
from src.estateflow.customers.schemas import MigrationReport  # noqa: E402
from src.estateflow.store import create_document_store  # noqa: E402

logger = structlog.get_logger(__name__)

OPERATIONS = ("migrate", "rollback", "remap-stage", "upgrade-properties")


async def run_operation(migrator: LayoutMigrator, operation: str) -> MigrationReport:
    if operation == "migrate":
        return await migrator.migrate_all()
    if operation == "rollback":
        return await migrator.rollback_all()
    if operation == "remap-stage":
        return await migrator.remap_stages()
    return await migrator.upgrade_property_shape()


async def main_async(args: argparse.Namespace) -> int:
    settings = get_settings()
    configure_structlog()

    store = create_document_store(settings)
    repository = CustomerRepository(store, collection=settings.CUSTOMERS_COLLECTION)
    migrator = LayoutMigrator(repository)

    logger.info("migration.started", operation=args.operation, backend=settings.STORE_BACKEND.value)
    try:
        report = await run_operation(migrator, args.operation)
    finally:
        await store.close()
        if settings.STORE_BACKEND == StoreBackend.redis:
            await close_redis()

    print(json.dumps(report.model_dump(), indent=2))
    return 1 if report.failed else 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Run a customer storage migration")
    parser.add_argument("operation", choices=OPERATIONS, help="Migration to run")
    args = parser.parse_args()

    sys.exit(asyncio.run(main_async(args)))


if __name__ == "__main__":
    main()
