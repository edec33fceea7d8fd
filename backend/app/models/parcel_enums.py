"""
Parcel Status Enumerations.
"""

import enum


class ParcelStatus(str, enum.Enum):
    """
    Parcel custody status enumeration.

    Status flow:
        CREATED → FACILITY_RECEIVED → IN_TRANSIT_TO_FACILITY_HUB → PICKUP_READY
        → ASSIGNED_TO_DRIVER → IN_TRANSIT_TO_PICKUP_POINT → OUT_FOR_DELIVERY
        → DELIVERED
        Any non-terminal status can transition to CANCELLED
    """
    CREATED = "CREATED"
    FACILITY_RECEIVED = "FACILITY_RECEIVED"
    IN_TRANSIT_TO_FACILITY_HUB = "IN_TRANSIT_TO_FACILITY_HUB"
    PICKUP_READY = "PICKUP_READY"
    ASSIGNED_TO_DRIVER = "ASSIGNED_TO_DRIVER"
    IN_TRANSIT_TO_PICKUP_POINT = "IN_TRANSIT_TO_PICKUP_POINT"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, enum.Enum):
    """Commerce payment state; carried through transitions untouched."""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    CANCELLED = "CANCELLED"


class HandoffOperation(str, enum.Enum):
    """Kind of batch custody change a scan session confirms."""
    PICKUP = "PICKUP"
    DROPOFF = "DROPOFF"
