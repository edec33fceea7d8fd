"""
Parcel database model.

The parcel row is the registry's record of a parcel and carries the
denormalized current-status projection of its event log.
"""

import uuid

from sqlalchemy import Column, Integer, String, Numeric, DateTime, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.parcel_enums import ParcelStatus, PaymentStatus


class Parcel(Base):
    """
    Parcel model for the handoff lifecycle.

    `status` is only ever written together with a new ParcelEvent, and
    `version` counts the accepted events; both move in one conditional
    UPDATE so concurrent writers cannot both win.
    """
    __tablename__ = "parcels"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tracking_code = Column(String(25), unique=True, nullable=False, index=True)

    # Endpoints
    sender_ref = Column(String(100), nullable=False, index=True)
    recipient_name = Column(String(255), nullable=False)
    recipient_phone = Column(String(32), nullable=False)

    # Custody relations
    dropoff_partner_ref = Column(String(100), nullable=True, index=True)
    pickup_partner_ref = Column(String(100), nullable=True, index=True)
    assigned_driver_ref = Column(String(100), nullable=True, index=True)

    # Proof of right-of-collection
    pickup_code = Column(String(10), nullable=True)
    pickup_code_used_at = Column(DateTime(timezone=True), nullable=True)

    # Commerce payload (opaque to the transition logic)
    payment_status = Column(Enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)

    # Lifecycle projection
    status = Column(Enum(ParcelStatus), default=ParcelStatus.CREATED, nullable=False, index=True)
    version = Column(Integer, nullable=False, default=0)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    events = relationship(
        "ParcelEvent",
        back_populates="parcel",
        order_by="ParcelEvent.sequence",
        lazy="raise",
    )

    def __repr__(self):
        return f"<Parcel(id={self.id}, tracking='{self.tracking_code}', status='{self.status.value}', v={self.version})>"
