"""
Parcel API Endpoints.

Lookup, history, single-parcel transitions and pickup-code checks. All
status changes go through the transition authority.
"""

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.dependencies import get_current_actor
from backend.app.core.guards import require_role
from backend.app.db.session import get_db
from backend.app.domain.handoff.actor import Actor
from backend.app.domain.handoff.authority import TransitionAuthority
from backend.app.models.enums import ActorRole
from backend.app.schemas.parcel import (
    ParcelCreate, ParcelResponse, ParcelCreatedResponse, ParcelEventResponse,
    ParcelHistoryResponse, TransitionRequest, TransitionResponse,
    PickupCodeVerifyRequest, PickupCodeVerifyResponse
)
from backend.app.services import event_log, parcel_registry
from backend.app.services.event_log import HandoffLocation
from backend.app.services.pickup_codes import verify_pickup_code

router = APIRouter(prefix="/parcels", tags=["Parcels"])


@router.post("", response_model=ParcelCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_parcel(
    parcel_data: ParcelCreate,
    actor: Actor = Depends(require_role([ActorRole.ADMIN, ActorRole.SYSTEM])),
    db: AsyncSession = Depends(get_db)
):
    """
    Register a new parcel in CREATED status (Admin / System only).

    Stands in for the external parcel creation service.
    """
    parcel = await parcel_registry.create_parcel(
        db,
        sender_ref=parcel_data.sender_ref,
        recipient_name=parcel_data.recipient_name,
        recipient_phone=parcel_data.recipient_phone,
        dropoff_partner_ref=parcel_data.dropoff_partner_ref,
        pickup_partner_ref=parcel_data.pickup_partner_ref,
        total_amount=parcel_data.total_amount,
        payment_status=parcel_data.payment_status,
        tracking_code=parcel_data.tracking_code,
    )

    return ParcelCreatedResponse.model_validate(parcel)


@router.get("/{tracking_code}", response_model=ParcelResponse)
async def get_parcel(
    tracking_code: str = Path(..., description="Parcel tracking code"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """Look a parcel up by tracking code."""
    parcel = await parcel_registry.get_by_tracking_code(db, tracking_code)
    return ParcelResponse.model_validate(parcel)


@router.get("/{tracking_code}/events", response_model=ParcelHistoryResponse)
async def get_parcel_events(
    tracking_code: str = Path(..., description="Parcel tracking code"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """Full custody history of a parcel, oldest event first."""
    parcel = await parcel_registry.get_by_tracking_code(db, tracking_code)
    events = await event_log.list_events(db, parcel.id)

    return ParcelHistoryResponse(
        tracking_code=parcel.tracking_code,
        status=parcel.status,
        events=[ParcelEventResponse.model_validate(e) for e in events]
    )


@router.post("/{tracking_code}/transitions", response_model=TransitionResponse)
async def apply_transition(
    request: TransitionRequest,
    tracking_code: str = Path(..., description="Parcel tracking code"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """
    Move one parcel to a new status.

    Role gating is done by the transition table, not by this endpoint, so
    a wrong role comes back as ERR_PERM_001 with the allowed roles listed.
    Re-sending a transition the parcel already made returns applied=false.
    """
    parcel = await parcel_registry.get_by_tracking_code(db, tracking_code)

    location = None
    if request.location:
        location = HandoffLocation(
            latitude=request.location.latitude,
            longitude=request.location.longitude,
            address=request.location.address,
        )

    result = await TransitionAuthority.apply(
        db,
        parcel.id,
        request.target_status,
        actor,
        notes=request.notes,
        expected_status=request.expected_status,
        location=location,
        assigned_driver_ref=request.assigned_driver_ref,
    )

    return TransitionResponse(
        parcel=ParcelResponse.model_validate(result.parcel),
        from_status=result.from_status,
        to_status=result.to_status,
        applied=result.applied,
        event=ParcelEventResponse.model_validate(result.event) if result.event else None,
    )


@router.post("/{tracking_code}/pickup-code/verify", response_model=PickupCodeVerifyResponse)
async def verify_parcel_pickup_code(
    request: PickupCodeVerifyRequest,
    tracking_code: str = Path(..., description="Parcel tracking code"),
    actor: Actor = Depends(require_role([ActorRole.DRIVER, ActorRole.PARTNER, ActorRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """
    Check a pickup code presented at handoff (Driver / Partner / Admin).

    Whether a code can be reused depends on the configured pickup code policy.
    """
    parcel = await parcel_registry.get_by_tracking_code(db, tracking_code)
    verification = await verify_pickup_code(db, parcel, request.pickup_code)

    return PickupCodeVerifyResponse(
        tracking_code=parcel.tracking_code,
        valid=verification.valid,
        reason=verification.reason,
        used_at=verification.used_at,
    )
