"""V1 API router -- aggregates all v1 endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from src.estateflow.api.v1 import customers, health, migrations, settings

router = APIRouter()

router.include_router(health.router)
router.include_router(customers.router)
router.include_router(settings.router)
router.include_router(migrations.router)
