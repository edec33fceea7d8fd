"""
Parcel event log service.

Append-only ledger of every accepted status change, plus the in-process
subscriber hook downstream consumers (notifications, audit exports) use
to hear about new events, and a consistency check between the ledger and
the parcel's status projection.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from sqlalchemy import select, func, desc
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.domain.handoff.actor import Actor
from backend.app.domain.handoff.transitions import INITIAL_STATUS, is_legal_edge
from backend.app.models.parcel import Parcel
from backend.app.models.enums import ActorRole
from backend.app.models.parcel_event import ParcelEvent
from backend.app.models.parcel_enums import ParcelStatus

logger = logging.getLogger("parcel_handoff.event_log")

EventSubscriber = Callable[[ParcelEvent], Awaitable[None]]

_subscribers: list = []


@dataclass(frozen=True)
class HandoffLocation:
    """Where a handoff physically happened."""
    latitude: float
    longitude: float
    address: Optional[str] = None


@dataclass
class ConsistencyReport:
    parcel_id: str
    projected_status: ParcelStatus
    logged_status: ParcelStatus
    event_count: int
    version: int
    problems: list = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return not self.problems


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


async def last_event_time(db: AsyncSession, parcel_id: str) -> Optional[datetime]:
    result = await db.execute(
        select(func.max(ParcelEvent.occurred_at)).where(ParcelEvent.parcel_id == parcel_id)
    )
    value = result.scalar_one_or_none()
    return _as_utc(value) if value is not None else None


async def append_event(
    db: AsyncSession,
    parcel_id: str,
    sequence: int,
    from_status: ParcelStatus,
    to_status: ParcelStatus,
    actor: Actor,
    notes: Optional[str] = None,
    location: Optional[HandoffLocation] = None,
) -> ParcelEvent:
    """
    Add one event to the ledger inside the caller's unit of work.

    `occurred_at` is server time, clamped so it never precedes the parcel's
    previous event. Flushes but does not commit.

    Raises:
        IntegrityError: an event with this sequence already exists
    """
    occurred_at = datetime.now(timezone.utc)
    previous = await last_event_time(db, parcel_id)
    if previous is not None and previous > occurred_at:
        occurred_at = previous

    event = ParcelEvent(
        parcel_id=parcel_id,
        sequence=sequence,
        from_status=from_status,
        to_status=to_status,
        actor_ref=actor.ref,
        actor_role=actor.role,
        notes=notes,
        location_latitude=location.latitude if location else None,
        location_longitude=location.longitude if location else None,
        location_address=location.address if location else None,
        occurred_at=occurred_at,
    )

    db.add(event)
    await db.flush()

    return event


async def list_events(db: AsyncSession, parcel_id: str) -> list[ParcelEvent]:
    """All events for a parcel, oldest first."""
    result = await db.execute(
        select(ParcelEvent)
        .where(ParcelEvent.parcel_id == parcel_id)
        .order_by(ParcelEvent.sequence.asc())
    )
    return list(result.scalars().all())


async def get_event_trail(
    db: AsyncSession,
    actor_ref: Optional[str] = None,
    actor_role: Optional[ActorRole] = None,
    limit: int = 100
) -> list[ParcelEvent]:
    """
    Retrieve recent events across parcels with optional filtering.

    Args:
        db: Database session
        actor_ref: Filter by acting identity
        actor_role: Filter by acting role
        limit: Maximum number of records to return

    Returns:
        List of ParcelEvent instances, most recent first
    """
    query = select(ParcelEvent).order_by(desc(ParcelEvent.occurred_at), desc(ParcelEvent.id))

    if actor_ref:
        query = query.where(ParcelEvent.actor_ref == actor_ref)

    if actor_role:
        query = query.where(ParcelEvent.actor_role == actor_role)

    query = query.limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())


async def count_events(db: AsyncSession, parcel_id: str) -> int:
    result = await db.execute(
        select(func.count(ParcelEvent.id)).where(ParcelEvent.parcel_id == parcel_id)
    )
    return result.scalar()


async def check_consistency(db: AsyncSession, parcel: Parcel) -> ConsistencyReport:
    """
    Verify the status projection against the ledger.

    Checks:
    - Projection equals the last event's target (CREATED with no events)
    - Each event starts where the previous one ended
    - Every recorded pair is a declared edge
    - Sequences run 1..n and the parcel version equals n
    """
    events = await list_events(db, parcel.id)
    logged_status = events[-1].to_status if events else INITIAL_STATUS

    report = ConsistencyReport(
        parcel_id=parcel.id,
        projected_status=parcel.status,
        logged_status=logged_status,
        event_count=len(events),
        version=parcel.version,
    )

    if parcel.status != logged_status:
        report.problems.append(
            f"projection {parcel.status.value} differs from ledger {logged_status.value}"
        )

    previous = INITIAL_STATUS
    for expected_sequence, event in enumerate(events, start=1):
        if event.sequence != expected_sequence:
            report.problems.append(f"event {event.id} has sequence {event.sequence}, expected {expected_sequence}")
        if event.from_status != previous:
            report.problems.append(
                f"event #{event.sequence} starts at {event.from_status.value}, previous ended at {previous.value}"
            )
        if not is_legal_edge(event.from_status, event.to_status):
            report.problems.append(
                f"event #{event.sequence} records undeclared edge "
                f"{event.from_status.value}->{event.to_status.value}"
            )
        previous = event.to_status

    if parcel.version != len(events):
        report.problems.append(f"version {parcel.version} differs from event count {len(events)}")

    return report


def subscribe(callback: EventSubscriber) -> None:
    """Register an async callback invoked for every newly committed event."""
    if callback not in _subscribers:
        _subscribers.append(callback)


def unsubscribe(callback: EventSubscriber) -> None:
    if callback in _subscribers:
        _subscribers.remove(callback)


async def publish(event: ParcelEvent) -> None:
    """
    Hand a committed event to every subscriber.

    The event is already durable; a failing subscriber is logged and does
    not affect the transition or the other subscribers.
    """
    for callback in list(_subscribers):
        try:
            await callback(event)
        except Exception:
            logger.exception(
                "Event subscriber %s failed",
                getattr(callback, "__name__", repr(callback)),
                extra={"parcel_id": event.parcel_id, "sequence": event.sequence},
            )
