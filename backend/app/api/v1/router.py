"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import admin, handoffs, parcels

router = APIRouter()

# Parcel lookup, history and single transitions
router.include_router(parcels.router)

# Scan classification and batch handoffs
router.include_router(handoffs.scan_router)
router.include_router(handoffs.router)

# Ledger inspection
router.include_router(admin.router)
