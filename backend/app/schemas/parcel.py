"""
Parcel Pydantic schemas.

Defines request and response models for parcel lookup, history and
single-parcel transitions.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from backend.app.models.enums import ActorRole
from backend.app.models.parcel_enums import ParcelStatus, PaymentStatus


class ParcelCreate(BaseModel):
    """Schema for registering a new parcel (creation service boundary)."""
    sender_ref: str = Field(..., min_length=1, max_length=100)
    recipient_name: str = Field(..., min_length=1, max_length=255)
    recipient_phone: str = Field(..., min_length=3, max_length=32)
    dropoff_partner_ref: Optional[str] = Field(None, max_length=100)
    pickup_partner_ref: Optional[str] = Field(None, max_length=100)
    total_amount: Decimal = Field(default=Decimal("0"), ge=0)
    payment_status: PaymentStatus = PaymentStatus.PENDING
    tracking_code: Optional[str] = Field(
        None, pattern=r"^[A-Za-z0-9\-_.]{8,25}$", description="Explicit tracking code; generated when omitted"
    )


class ParcelResponse(BaseModel):
    """Schema for parcel response."""
    id: str
    tracking_code: str
    status: ParcelStatus
    sender_ref: str
    recipient_name: str
    recipient_phone: str
    dropoff_partner_ref: Optional[str]
    pickup_partner_ref: Optional[str]
    assigned_driver_ref: Optional[str]
    payment_status: PaymentStatus
    total_amount: Decimal
    version: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ParcelCreatedResponse(ParcelResponse):
    """Creation response; the only place the pickup code is returned."""
    pickup_code: Optional[str]


class LocationPayload(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    address: Optional[str] = Field(None, max_length=500)


class ParcelEventResponse(BaseModel):
    """Schema for one event in a parcel's history."""
    id: int
    parcel_id: str
    sequence: int
    from_status: ParcelStatus
    to_status: ParcelStatus
    actor_ref: str
    actor_role: ActorRole
    notes: Optional[str]
    location_latitude: Optional[float]
    location_longitude: Optional[float]
    location_address: Optional[str]
    occurred_at: datetime

    class Config:
        from_attributes = True


class ParcelHistoryResponse(BaseModel):
    tracking_code: str
    status: ParcelStatus
    events: List[ParcelEventResponse]


class TransitionRequest(BaseModel):
    """Request to move one parcel to a new status."""
    target_status: ParcelStatus
    notes: Optional[str] = Field(None, max_length=2000)
    expected_status: Optional[ParcelStatus] = Field(
        None, description="Status the caller last saw; mismatch yields a conflict"
    )
    location: Optional[LocationPayload] = None
    assigned_driver_ref: Optional[str] = Field(None, max_length=100)


class TransitionResponse(BaseModel):
    parcel: ParcelResponse
    from_status: ParcelStatus
    to_status: ParcelStatus
    applied: bool
    event: Optional[ParcelEventResponse] = None


class PickupCodeVerifyRequest(BaseModel):
    pickup_code: str = Field(..., min_length=1, max_length=32)


class PickupCodeVerifyResponse(BaseModel):
    tracking_code: str
    valid: bool
    reason: str
    used_at: Optional[datetime] = None
