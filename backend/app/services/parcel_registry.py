"""
Parcel registry service.

Owns parcel records and their current-status projection. Every other
component looks parcels up here; the only status write path is
advance_status(), used by the transition authority.
"""

import logging
import secrets
import string
import time
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import DuplicateTrackingCodeError, ParcelNotFoundError
from backend.app.domain.handoff.transitions import EDGES
from backend.app.models.parcel import Parcel
from backend.app.models.parcel_enums import ParcelStatus, PaymentStatus, HandoffOperation
from backend.app.services.tracking_codec import normalize

logger = logging.getLogger("parcel_handoff.registry")

_GENERATED_CODE_ATTEMPTS = 3
_BASE36 = string.digits + string.ascii_uppercase
_PICKUP_ALPHABET = string.ascii_uppercase + string.digits


def _to_base36(number: int) -> str:
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits)) or "0"


def generate_tracking_code() -> str:
    """AD + base36 millisecond timestamp + 5 random base36 characters."""
    timestamp = _to_base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(_BASE36) for _ in range(5))
    return f"AD{timestamp}{suffix}"


def generate_pickup_code(length: int = 6) -> str:
    return "".join(secrets.choice(_PICKUP_ALPHABET) for _ in range(length))


async def create_parcel(
    db: AsyncSession,
    sender_ref: str,
    recipient_name: str,
    recipient_phone: str,
    dropoff_partner_ref: Optional[str] = None,
    pickup_partner_ref: Optional[str] = None,
    total_amount: Decimal = Decimal("0"),
    payment_status: PaymentStatus = PaymentStatus.PENDING,
    tracking_code: Optional[str] = None,
) -> Parcel:
    """
    Register a new parcel in CREATED status.

    This is the boundary used by the parcel creation service. No event is
    written: CREATED is the initial status, not a transition.

    Args:
        db: Database session
        sender_ref: Sender identity reference
        recipient_name: Recipient display name
        recipient_phone: Recipient phone number
        dropoff_partner_ref: Partner where the sender drops the parcel off
        pickup_partner_ref: Partner where the recipient collects it
        total_amount: Commerce amount, carried through untouched
        payment_status: Commerce payment state, carried through untouched
        tracking_code: Explicit tracking code; generated when omitted

    Returns:
        Created Parcel

    Raises:
        DuplicateTrackingCodeError: Explicit code already registered, or
            every generated code collided
    """
    explicit_code = normalize(tracking_code) if tracking_code else None
    attempts = 1 if explicit_code else _GENERATED_CODE_ATTEMPTS

    for attempt in range(1, attempts + 1):
        code = explicit_code or generate_tracking_code()
        parcel = Parcel(
            tracking_code=code,
            sender_ref=sender_ref,
            recipient_name=recipient_name,
            recipient_phone=recipient_phone,
            dropoff_partner_ref=dropoff_partner_ref,
            pickup_partner_ref=pickup_partner_ref,
            pickup_code=generate_pickup_code(),
            payment_status=payment_status,
            total_amount=total_amount,
            status=ParcelStatus.CREATED,
            version=0,
        )

        db.add(parcel)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            logger.warning(
                "Tracking code collision on create",
                extra={"tracking_code": code, "generated": explicit_code is None, "attempt": attempt},
            )
            continue

        await db.refresh(parcel)
        return parcel

    raise DuplicateTrackingCodeError(code)


async def get_by_id(db: AsyncSession, parcel_id: str) -> Parcel:
    """
    Load a parcel by internal id.

    Always overwrites an identity-mapped copy with the row as stored, so
    status checks never run against a stale object.

    Raises:
        ParcelNotFoundError: No such parcel
    """
    result = await db.execute(
        select(Parcel)
        .where(Parcel.id == parcel_id)
        .execution_options(populate_existing=True)
    )
    parcel = result.scalar_one_or_none()

    if not parcel:
        raise ParcelNotFoundError(parcel_id)

    return parcel


async def get_by_tracking_code(db: AsyncSession, tracking_code: str) -> Parcel:
    """Load a parcel by its (normalized) tracking code."""
    code = normalize(tracking_code)
    result = await db.execute(
        select(Parcel)
        .where(Parcel.tracking_code == code)
        .execution_options(populate_existing=True)
    )
    parcel = result.scalar_one_or_none()

    if not parcel:
        raise ParcelNotFoundError(code)

    return parcel


async def get_many_by_tracking_codes(db: AsyncSession, tracking_codes: Iterable[str]) -> dict[str, Parcel]:
    """Map each known tracking code to its parcel; unknown codes are absent."""
    codes = {normalize(code) for code in tracking_codes}
    if not codes:
        return {}

    result = await db.execute(
        select(Parcel).where(Parcel.tracking_code.in_(codes))
    )
    return {parcel.tracking_code: parcel for parcel in result.scalars().all()}


async def advance_status(
    db: AsyncSession,
    parcel_id: str,
    from_version: int,
    to_status: ParcelStatus,
    assigned_driver_ref: Optional[str] = None,
) -> bool:
    """
    Move the status projection forward, guarded by the parcel version.

    Issues UPDATE ... WHERE id = :id AND version = :from_version, bumping
    the version in the same statement. Does not commit.

    Returns:
        True if the row was updated, False if another writer got there first
    """
    values = {"status": to_status, "version": from_version + 1}
    if assigned_driver_ref is not None:
        values["assigned_driver_ref"] = assigned_driver_ref

    stmt = (
        update(Parcel)
        .where(Parcel.id == parcel_id, Parcel.version == from_version)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.rowcount == 1


def statuses_for_operation(operation: HandoffOperation) -> set[ParcelStatus]:
    """Statuses from which a handoff of kind `operation` can move a parcel."""
    return {edge.source for edge in EDGES.values() if edge.operation == operation}


async def manifest_for_driver(
    db: AsyncSession,
    driver_ref: str,
    statuses: Optional[Iterable[ParcelStatus]] = None,
) -> set[str]:
    """
    Tracking codes a driver is accountable for.

    Args:
        db: Database session
        driver_ref: Driver reference
        statuses: Restrict to these statuses (all statuses when omitted)
    """
    query = select(Parcel.tracking_code).where(Parcel.assigned_driver_ref == driver_ref)
    if statuses is not None:
        query = query.where(Parcel.status.in_(list(statuses)))

    result = await db.execute(query)
    return set(result.scalars().all())


async def manifest_for_partner(
    db: AsyncSession,
    partner_ref: str,
    statuses: Optional[Iterable[ParcelStatus]] = None,
) -> set[str]:
    """Tracking codes staged at a partner, as dropoff or pickup point."""
    query = select(Parcel.tracking_code).where(
        (Parcel.dropoff_partner_ref == partner_ref) | (Parcel.pickup_partner_ref == partner_ref)
    )
    if statuses is not None:
        query = query.where(Parcel.status.in_(list(statuses)))

    result = await db.execute(query)
    return set(result.scalars().all())
