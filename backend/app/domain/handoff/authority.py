"""
Transition Authority (Domain Logic).

The one write path for parcel status. Each call is a single unit of
work: re-read the parcel, validate the move against the transition
table, advance the status projection under an optimistic version check,
append exactly one event, commit.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import AppException, ConcurrentModificationError, InvalidTransitionError
from backend.app.domain.handoff.actor import Actor
from backend.app.domain.handoff.transitions import check_transition
from backend.app.models.parcel import Parcel
from backend.app.models.parcel_event import ParcelEvent
from backend.app.models.parcel_enums import ParcelStatus
from backend.app.services import event_log, parcel_registry
from backend.app.services.event_log import HandoffLocation

logger = logging.getLogger("parcel_handoff.transitions")


@dataclass
class TransitionResult:
    parcel: Parcel
    from_status: ParcelStatus
    to_status: ParcelStatus
    applied: bool
    event: Optional[ParcelEvent] = None


class TransitionAuthority:

    @staticmethod
    async def apply(
        db: AsyncSession,
        parcel_id: str,
        target_status: ParcelStatus,
        actor: Actor,
        notes: Optional[str] = None,
        expected_status: Optional[ParcelStatus] = None,
        location: Optional[HandoffLocation] = None,
        assigned_driver_ref: Optional[str] = None,
    ) -> TransitionResult:
        """
        Move a parcel to `target_status` on behalf of `actor`.

        Flow:
        1. Re-read the parcel (NOT_FOUND)
        2. Compare with the caller's expected status, if given (CONFLICT)
        3. Already at target: no-op success, no event
        4. Terminal source or undeclared edge (INVALID_TRANSITION)
        5. Role not allowed on the edge (FORBIDDEN)
        6. Driver given on an edge other than the assignment (INVALID_TRANSITION)
        7. Version-guarded status update + event insert (CONFLICT on race)
        8. Commit, then notify event subscribers

        The no-op in step 3 is accepted for any role: it writes nothing and
        changes no custody. Every other target is role-checked.

        Args:
            db: Database session; committed on success, rolled back on failure
            parcel_id: Parcel to move
            target_status: Requested status
            actor: Acting identity (trusted)
            notes: Free-text note stored on the event
            expected_status: Status the caller believes the parcel is in
            location: Where the handoff happened
            assigned_driver_ref: Driver to record as custodian; only accepted on
                the PICKUP_READY -> ASSIGNED_TO_DRIVER edge

        Returns:
            TransitionResult; `applied` is False for the idempotent no-op

        Raises:
            ParcelNotFoundError, InvalidTransitionError,
            TransitionForbiddenError, ConcurrentModificationError
        """
        current = None
        try:
            parcel = await parcel_registry.get_by_id(db, parcel_id)
            current = parcel.status
            version = parcel.version

            if expected_status is not None and current != expected_status:
                raise ConcurrentModificationError(parcel_id, expected_status.value, current.value)

            if current == target_status:
                # Ends the read-only transaction without expiring the parcel
                await db.commit()
                logger.info(
                    "Transition no-op, parcel already at target",
                    extra={"parcel_id": parcel_id, "status": current.value, "actor_ref": actor.ref},
                )
                return TransitionResult(parcel, current, target_status, applied=False)

            edge = check_transition(current, target_status, actor.role)
            if assigned_driver_ref is not None and not edge.assigns_driver:
                raise InvalidTransitionError(
                    current.value,
                    target_status.value,
                    reason="a driver can only be recorded when assigning one",
                )

            advanced = await parcel_registry.advance_status(
                db, parcel_id, version, target_status, assigned_driver_ref=assigned_driver_ref
            )
            if not advanced:
                raise ConcurrentModificationError(parcel_id)

            event = await event_log.append_event(
                db,
                parcel_id=parcel_id,
                sequence=version + 1,
                from_status=current,
                to_status=target_status,
                actor=actor,
                notes=notes,
                location=location,
            )
            await db.commit()

        except IntegrityError as exc:
            await db.rollback()
            logger.warning(
                "Transition lost an event-sequence race",
                extra={"parcel_id": parcel_id, "target_status": target_status.value},
            )
            raise ConcurrentModificationError(parcel_id) from exc

        except AppException as exc:
            await db.rollback()
            logger.warning(
                "Transition rejected: %s",
                exc.kind.value,
                extra={
                    "parcel_id": parcel_id,
                    "current_status": current.value if current else None,
                    "target_status": target_status.value,
                    "actor_role": actor.role.value,
                    "actor_ref": actor.ref,
                },
            )
            raise

        await db.refresh(parcel)

        logger.info(
            "Transition accepted",
            extra={
                "parcel_id": parcel_id,
                "from_status": current.value,
                "to_status": target_status.value,
                "actor_role": actor.role.value,
                "actor_ref": actor.ref,
                "sequence": event.sequence,
            },
        )

        await event_log.publish(event)

        return TransitionResult(parcel, current, target_status, applied=True, event=event)
