"""
Admin API Endpoints.

Ledger inspection for operations staff: per-parcel consistency between
the event log and the status projection, and a cross-parcel audit trail.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession
from backend.app.core.guards import require_admin
from backend.app.db.session import get_db
from backend.app.domain.handoff.actor import Actor
from backend.app.models.enums import ActorRole
from backend.app.schemas.admin import ConsistencyResponse
from backend.app.schemas.parcel import ParcelEventResponse
from backend.app.services import event_log, parcel_registry

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/parcels/{tracking_code}/consistency", response_model=ConsistencyResponse)
async def check_parcel_consistency(
    tracking_code: str = Path(..., description="Parcel tracking code"),
    admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Verify a parcel's status projection against its event log (admin-only).

    Reports every problem found rather than stopping at the first.
    """
    parcel = await parcel_registry.get_by_tracking_code(db, tracking_code)
    report = await event_log.check_consistency(db, parcel)

    return ConsistencyResponse(
        parcel_id=report.parcel_id,
        tracking_code=parcel.tracking_code,
        consistent=report.consistent,
        projected_status=report.projected_status,
        logged_status=report.logged_status,
        event_count=report.event_count,
        version=report.version,
        problems=report.problems,
    )


@router.get("/events", response_model=list[ParcelEventResponse])
async def get_event_trail(
    actor_ref: Optional[str] = Query(None, description="Filter by acting identity"),
    actor_role: Optional[ActorRole] = Query(None, description="Filter by acting role"),
    limit: int = Query(100, ge=1, le=500, description="Maximum events returned"),
    admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Recent events across all parcels, most recent first (admin-only)."""
    events = await event_log.get_event_trail(db, actor_ref=actor_ref, actor_role=actor_role, limit=limit)
    return [ParcelEventResponse.model_validate(e) for e in events]
