"""
Scan and batch handoff schemas.
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from backend.app.core.exceptions import ErrorKind
from backend.app.domain.handoff.scan_session import ScanOutcome
from backend.app.models.parcel_enums import ParcelStatus, HandoffOperation
from backend.app.schemas.parcel import LocationPayload
from backend.app.services.tracking_codec import PayloadClass


class ClassifyRequest(BaseModel):
    payload: str
    expect: Optional[PayloadClass] = Field(
        None, description="Reject payloads of any other class with ERR_SCAN_002"
    )


class ClassifyResponse(BaseModel):
    payload_class: PayloadClass
    normalized_value: str
    pickup_code: Optional[str] = None


class HandoffRequest(BaseModel):
    """
    One batch handoff: the manifest plus everything scanned, in scan order.

    `expected` may be empty for an open-ended session.
    """
    operation: HandoffOperation
    expected: List[str] = Field(default_factory=list)
    payloads: List[str] = Field(default_factory=list, max_length=1000)
    notes: Optional[str] = Field(None, max_length=2000)
    location: Optional[LocationPayload] = None


class ScanResultResponse(BaseModel):
    raw_payload: str
    outcome: ScanOutcome
    tracking_code: Optional[str] = None
    payload_class: Optional[PayloadClass] = None
    message: Optional[str] = None


class ReconciliationResponse(BaseModel):
    matched: List[str]
    missing: List[str]
    extra: List[str]
    complete: bool
    open_ended: bool


class ReconcileResponse(BaseModel):
    operation: HandoffOperation
    scans: List[ScanResultResponse]
    scanned: List[str]
    reconciliation: ReconciliationResponse
    unknown: List[str] = Field(default_factory=list, description="Scanned codes the registry does not know")
    pickup_code_mismatch: List[str] = Field(
        default_factory=list, description="Scanned codes whose QR envelope carried the wrong pickup code"
    )


class ParcelOutcomeResponse(BaseModel):
    tracking_code: str
    succeeded: bool
    parcel_id: Optional[str] = None
    from_status: Optional[ParcelStatus] = None
    to_status: Optional[ParcelStatus] = None
    applied: bool = False
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None

    class Config:
        from_attributes = True


class CommitResponse(ReconcileResponse):
    outcomes: List[ParcelOutcomeResponse]
    succeeded: int
    failed: int


class ManifestResponse(BaseModel):
    operation: HandoffOperation
    driver_ref: Optional[str] = None
    partner_ref: Optional[str] = None
    tracking_codes: List[str]
