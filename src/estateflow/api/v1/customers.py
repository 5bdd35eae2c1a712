"""REST API endpoints for customer records.

Reads go through the customer repository; every write goes through the sync
coordinator so nested collections are reconciled against the latest stored
state. Request and response bodies use the stored camelCase keys.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel

from src.estateflow.api.deps import get_coordinator
from src.estateflow.customers.exceptions import CustomerNotFoundError, MeetingNotFoundError
from src.estateflow.customers.schemas import Customer, CustomerUpdate, SyncResult
from src.estateflow.customers.sync import SyncCoordinator

router = APIRouter(prefix="/customers", tags=["customers"])


# ── Response Schemas ─────────────────────────────────────────────────────────


class FavoriteResponse(BaseModel):
    """Favorite flag after a toggle."""

    customer_id: str
    is_favorite: bool


def _not_found(exc: LookupError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


# ── Customer Endpoints ───────────────────────────────────────────────────────


@router.get(
    "",
    response_model=list[Customer],
    response_model_by_alias=True,
    response_model_exclude_none=True,
)
async def list_customers(
    stage: str | None = Query(default=None),
    favorites_only: bool = Query(default=False),
    coordinator: SyncCoordinator = Depends(get_coordinator),
) -> list[Customer]:
    """List customers, newest first. Sub-record collections are not expanded."""
    customers = await coordinator.repository.list_customers()
    if stage is not None:
        customers = [c for c in customers if c.stage == stage]
    if favorites_only:
        customers = [c for c in customers if c.is_favorite]
    return customers


@router.post(
    "",
    response_model=Customer,
    response_model_by_alias=True,
    response_model_exclude_none=True,
    status_code=201,
)
async def create_customer(
    body: Customer,
    coordinator: SyncCoordinator = Depends(get_coordinator),
) -> Customer:
    """Register a new customer with its initial collections."""
    return await coordinator.create_customer(body)


@router.get(
    "/{customer_id}",
    response_model=Customer,
    response_model_by_alias=True,
    response_model_exclude_none=True,
)
async def get_customer(
    customer_id: str,
    coordinator: SyncCoordinator = Depends(get_coordinator),
) -> Customer:
    """Fetch one customer with every nested collection expanded."""
    customer = await coordinator.repository.get_customer(customer_id)
    if customer is None:
        raise _not_found(CustomerNotFoundError(customer_id))
    return customer


@router.patch("/{customer_id}", response_model=SyncResult)
async def update_customer(
    customer_id: str,
    body: CustomerUpdate,
    coordinator: SyncCoordinator = Depends(get_coordinator),
) -> SyncResult:
    """Apply a partial update; nested arrays in the body replace the stored ones."""
    try:
        return await coordinator.apply_update(customer_id, body)
    except CustomerNotFoundError as exc:
        raise _not_found(exc) from exc


@router.delete("/{customer_id}", status_code=204)
async def delete_customer(
    customer_id: str,
    coordinator: SyncCoordinator = Depends(get_coordinator),
) -> Response:
    """Delete a customer and everything beneath it."""
    try:
        await coordinator.delete_customer(customer_id)
    except CustomerNotFoundError as exc:
        raise _not_found(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/{customer_id}/meetings/{meeting_id}", response_model=SyncResult)
async def delete_meeting(
    customer_id: str,
    meeting_id: str,
    coordinator: SyncCoordinator = Depends(get_coordinator),
) -> SyncResult:
    """Delete one meeting; remaining rounds are renumbered 1..N."""
    try:
        return await coordinator.delete_meeting(customer_id, meeting_id)
    except (CustomerNotFoundError, MeetingNotFoundError) as exc:
        raise _not_found(exc) from exc


@router.post("/{customer_id}/favorite", response_model=FavoriteResponse)
async def toggle_favorite(
    customer_id: str,
    coordinator: SyncCoordinator = Depends(get_coordinator),
) -> FavoriteResponse:
    """Flip the favorite flag."""
    try:
        is_favorite = await coordinator.toggle_favorite(customer_id)
    except CustomerNotFoundError as exc:
        raise _not_found(exc) from exc
    return FavoriteResponse(customer_id=customer_id, is_favorite=is_favorite)
