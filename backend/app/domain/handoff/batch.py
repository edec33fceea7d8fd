"""
Batch Handoff Commit (Domain Logic).

Turns a scan session into per-parcel transitions. Each parcel is its own
unit of work: one parcel failing does not block the others, and parcels
already committed stay committed if the batch is cancelled part-way.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import AppException, ErrorKind, InvalidTransitionError
from backend.app.domain.handoff.actor import Actor
from backend.app.domain.handoff.authority import TransitionAuthority
from backend.app.domain.handoff.scan_session import ScanSession, ReconciliationReport
from backend.app.domain.handoff.transitions import check_transition, resolve_next_status
from backend.app.models.parcel_enums import ParcelStatus, HandoffOperation
from backend.app.services import parcel_registry
from backend.app.services.event_log import HandoffLocation
from backend.app.services.pickup_codes import check_envelope_code

logger = logging.getLogger("parcel_handoff.batch")


@dataclass
class ParcelOutcome:
    tracking_code: str
    succeeded: bool
    parcel_id: Optional[str] = None
    from_status: Optional[ParcelStatus] = None
    to_status: Optional[ParcelStatus] = None
    applied: bool = False
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None


@dataclass
class CommitReport:
    operation: HandoffOperation
    reconciliation: ReconciliationReport
    outcomes: list = field(default_factory=list)

    @property
    def succeeded(self) -> list:
        return [o for o in self.outcomes if o.succeeded]

    @property
    def failed(self) -> list:
        return [o for o in self.outcomes if not o.succeeded]

    @property
    def all_succeeded(self) -> bool:
        return not self.failed


class HandoffCommitter:

    @staticmethod
    async def commit(
        db: AsyncSession,
        session: ScanSession,
        actor: Actor,
        notes: Optional[str] = None,
        location: Optional[HandoffLocation] = None,
    ) -> CommitReport:
        """
        Commit every scanned parcel of a session.

        The session is closed first, so it cannot be committed twice. Codes
        are processed in sorted order; for each one the target status is
        resolved from that parcel's own current status and the session's
        operation, then applied with the read status as the expected one.
        A parcel scanned from a QR envelope that carries a pickup code must
        present the right code, or it fails with PICKUP_CODE_REJECTED.

        Cancelling the awaiting task stops the loop between or during
        parcels; the parcel in flight is rolled back with its session and
        earlier parcels remain committed.

        Returns:
            CommitReport with the reconciliation snapshot and one outcome
            per scanned code
        """
        session.close()
        report = CommitReport(operation=session.operation, reconciliation=session.reconcile())

        for tracking_code in sorted(session.scanned):
            outcome = await HandoffCommitter._commit_one(
                db, session.operation, tracking_code, session.pickup_code_for(tracking_code),
                actor, notes, location
            )
            report.outcomes.append(outcome)

        logger.info(
            "Batch handoff committed",
            extra={
                "operation": session.operation.value,
                "actor_ref": actor.ref,
                "scanned": len(report.outcomes),
                "succeeded": len(report.succeeded),
                "failed": len(report.failed),
            },
        )

        return report

    @staticmethod
    async def _commit_one(
        db: AsyncSession,
        operation: HandoffOperation,
        tracking_code: str,
        envelope_code: Optional[str],
        actor: Actor,
        notes: Optional[str],
        location: Optional[HandoffLocation],
    ) -> ParcelOutcome:
        parcel_id = None
        current = None
        try:
            parcel = await parcel_registry.get_by_tracking_code(db, tracking_code)
            parcel_id = parcel.id
            current = parcel.status

            target = resolve_next_status(current, operation)
            if target is None:
                raise InvalidTransitionError(
                    current.value,
                    operation.value,
                    reason=f"no {operation.value} handoff from this status",
                )

            if envelope_code is not None:
                # Role is checked first so a refused actor cannot burn a single-use code
                check_transition(current, target, actor.role)
                await check_envelope_code(db, parcel, envelope_code)

            result = await TransitionAuthority.apply(
                db,
                parcel_id,
                target,
                actor,
                notes=notes,
                expected_status=current,
                location=location,
            )
        except AppException as exc:
            return ParcelOutcome(
                tracking_code=tracking_code,
                succeeded=False,
                parcel_id=parcel_id,
                from_status=current,
                error_kind=exc.kind,
                message=exc.message,
            )

        return ParcelOutcome(
            tracking_code=tracking_code,
            succeeded=True,
            parcel_id=parcel_id,
            from_status=result.from_status,
            to_status=result.to_status,
            applied=result.applied,
        )
