"""
Admin schemas.
"""

from pydantic import BaseModel
from typing import List
from backend.app.models.parcel_enums import ParcelStatus


class ConsistencyResponse(BaseModel):
    """Ledger versus projection check for one parcel."""
    parcel_id: str
    tracking_code: str
    consistent: bool
    projected_status: ParcelStatus
    logged_status: ParcelStatus
    event_count: int
    version: int
    problems: List[str]
