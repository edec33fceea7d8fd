"""
Scanning and Batch Handoff API Endpoints.

A scan session lives for exactly one request: the client sends the
manifest and everything it scanned, the server replays the scans through
a fresh session, reconciles, and (for /commit) commits per parcel.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.dependencies import get_current_actor
from backend.app.db.session import get_db
from backend.app.domain.handoff.actor import Actor
from backend.app.domain.handoff.batch import HandoffCommitter
from backend.app.domain.handoff.scan_session import ScanSession, ReconciliationReport
from backend.app.models.parcel_enums import HandoffOperation
from backend.app.schemas.handoff import (
    ClassifyRequest, ClassifyResponse, HandoffRequest, ScanResultResponse,
    ReconciliationResponse, ReconcileResponse, ParcelOutcomeResponse,
    CommitResponse, ManifestResponse
)
from backend.app.services import parcel_registry
from backend.app.services.event_log import HandoffLocation
from backend.app.services.pickup_codes import code_matches
from backend.app.services.tracking_codec import classify, classify_as

scan_router = APIRouter(prefix="/scan", tags=["Scanning"])
router = APIRouter(prefix="/handoffs", tags=["Batch Handoffs"])


def _run_scans(request: HandoffRequest) -> tuple[ScanSession, list[ScanResultResponse]]:
    session = ScanSession.start(request.operation, request.expected)
    scans = []
    for payload in request.payloads:
        result = session.scan(payload)
        scans.append(ScanResultResponse(
            raw_payload=result.raw_payload,
            outcome=result.outcome,
            tracking_code=result.tracking_code,
            payload_class=result.payload_class,
            message=result.message,
        ))
    return session, scans


def _reconciliation_response(report: ReconciliationReport) -> ReconciliationResponse:
    return ReconciliationResponse(
        matched=sorted(report.matched),
        missing=sorted(report.missing),
        extra=sorted(report.extra),
        complete=report.complete,
        open_ended=report.open_ended,
    )


@scan_router.post("/classify", response_model=ClassifyResponse)
async def classify_payload(
    request: ClassifyRequest,
    actor: Actor = Depends(get_current_actor),
):
    """Classify a raw scan payload (parcel, pickup code, partner, general)."""
    if request.expect is not None:
        payload = classify_as(request.payload, request.expect)
    else:
        payload = classify(request.payload)
    return ClassifyResponse(
        payload_class=payload.payload_class,
        normalized_value=payload.normalized_value,
        pickup_code=payload.pickup_code,
    )


@router.get("/manifest", response_model=ManifestResponse)
async def get_manifest(
    operation: HandoffOperation = Query(..., description="Handoff kind"),
    driver_ref: Optional[str] = Query(None, description="Driver whose parcels to list"),
    partner_ref: Optional[str] = Query(None, description="Partner whose parcels to list"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """
    Expected set for a batch handoff.

    Lists parcels held by the driver or partner that a handoff of this kind
    could move from their current status.
    """
    if bool(driver_ref) == bool(partner_ref):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Provide exactly one of driver_ref or partner_ref"
        )

    statuses = parcel_registry.statuses_for_operation(operation)
    if driver_ref:
        codes = await parcel_registry.manifest_for_driver(db, driver_ref, statuses)
    else:
        codes = await parcel_registry.manifest_for_partner(db, partner_ref, statuses)

    return ManifestResponse(
        operation=operation,
        driver_ref=driver_ref,
        partner_ref=partner_ref,
        tracking_codes=sorted(codes),
    )


@router.post("/reconcile", response_model=ReconcileResponse)
async def reconcile_handoff(
    request: HandoffRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """
    Dry run: replay the scans and compare against the manifest.

    Also lists scanned codes with no parcel behind them, which would fail
    with NOT_FOUND on commit, and parcels whose QR envelope carried the
    wrong pickup code, which would fail with PICKUP_CODE_REJECTED. Writes
    nothing, so a single-use code is not burned; the session is discarded
    at the end of the request.
    """
    session, scans = _run_scans(request)
    report = session.reconcile()
    scanned = sorted(session.scanned)
    known = await parcel_registry.get_many_by_tracking_codes(db, scanned)
    mismatched = [
        code for code in scanned
        if code in known
        and session.pickup_code_for(code) is not None
        and not code_matches(known[code], session.pickup_code_for(code))
    ]
    session.discard()

    return ReconcileResponse(
        operation=request.operation,
        scans=scans,
        scanned=scanned,
        reconciliation=_reconciliation_response(report),
        unknown=[code for code in scanned if code not in known],
        pickup_code_mismatch=mismatched,
    )


@router.post("/commit", response_model=CommitResponse)
async def commit_handoff(
    request: HandoffRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """
    Replay the scans, reconcile, and commit every accepted parcel.

    Each parcel commits independently; the response lists one outcome per
    scanned parcel and the caller decides whether partial success is
    acceptable.
    """
    session, scans = _run_scans(request)
    scanned = sorted(session.scanned)

    location = None
    if request.location:
        location = HandoffLocation(
            latitude=request.location.latitude,
            longitude=request.location.longitude,
            address=request.location.address,
        )

    report = await HandoffCommitter.commit(db, session, actor, notes=request.notes, location=location)

    return CommitResponse(
        operation=request.operation,
        scans=scans,
        scanned=scanned,
        reconciliation=_reconciliation_response(report.reconciliation),
        outcomes=[ParcelOutcomeResponse.model_validate(o) for o in report.outcomes],
        succeeded=len(report.succeeded),
        failed=len(report.failed),
    )
