"""
Parcel Event database model.

Append-only ledger of accepted status changes. Rows are never updated or
deleted; the parcel's status projection always equals the `to_status` of
its highest-sequence event.
"""

from sqlalchemy import Column, Integer, String, Float, Text, DateTime, ForeignKey, Enum, UniqueConstraint
from sqlalchemy.orm import relationship
from backend.app.db.session import Base
from backend.app.models.enums import ActorRole
from backend.app.models.parcel_enums import ParcelStatus


class ParcelEvent(Base):
    """
    One recorded transition of a parcel.

    `sequence` is 1-based per parcel and unique together with `parcel_id`,
    so two writers racing to append the same step collide on insert.
    """
    __tablename__ = "parcel_events"
    __table_args__ = (
        UniqueConstraint("parcel_id", "sequence", name="uq_parcel_events_parcel_sequence"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    parcel_id = Column(String(36), ForeignKey("parcels.id"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)

    # Transition
    from_status = Column(Enum(ParcelStatus), nullable=False)
    to_status = Column(Enum(ParcelStatus), nullable=False)

    # Actor
    actor_ref = Column(String(100), nullable=False, index=True)
    actor_role = Column(Enum(ActorRole), nullable=False)

    # Context
    notes = Column(Text, nullable=True)
    location_latitude = Column(Float, nullable=True)
    location_longitude = Column(Float, nullable=True)
    location_address = Column(String(500), nullable=True)

    # Server-assigned, non-decreasing per parcel
    occurred_at = Column(DateTime(timezone=True), nullable=False, index=True)

    parcel = relationship("Parcel", back_populates="events")

    def __repr__(self):
        return (
            f"<ParcelEvent(id={self.id}, parcel={self.parcel_id}, #{self.sequence}, "
            f"{self.from_status.value}->{self.to_status.value}, by={self.actor_role.value})>"
        )
