"""
Pickup code verification.

A pickup code proves right-of-collection while a parcel sits in a
pickup-eligible status. Whether a code survives its first successful use
is a policy setting (settings.pickup_code_policy), not a hard-coded rule.
"""

import hmac
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import PickupCodeRejectedError
from backend.app.models.parcel import Parcel
from backend.app.models.parcel_enums import ParcelStatus
from backend.app.services.tracking_codec import normalize

PICKUP_ELIGIBLE_STATUSES = frozenset({
    ParcelStatus.PICKUP_READY,
    ParcelStatus.ASSIGNED_TO_DRIVER,
    ParcelStatus.OUT_FOR_DELIVERY,
})

SINGLE_USE = "single_use"


class PickupCodeReason:
    """Verification result reasons."""
    OK = "OK"
    NOT_ELIGIBLE = "NOT_ELIGIBLE"
    NO_CODE_ISSUED = "NO_CODE_ISSUED"
    MISMATCH = "MISMATCH"
    ALREADY_USED = "ALREADY_USED"


@dataclass(frozen=True)
class PickupVerification:
    valid: bool
    reason: str
    used_at: Optional[datetime] = None


def code_matches(parcel: Parcel, code: Optional[str]) -> bool:
    """Constant-time, case-insensitive comparison; any unicode input is a plain mismatch."""
    if not parcel.pickup_code:
        return False
    presented = normalize(code or "").encode("utf-8")
    return hmac.compare_digest(presented, parcel.pickup_code.upper().encode("utf-8"))


async def verify_pickup_code(
    db: AsyncSession,
    parcel: Parcel,
    code: str,
    policy: Optional[str] = None,
) -> PickupVerification:
    """
    Check a presented pickup code against a parcel.

    Under the single-use policy the first successful check stamps
    `pickup_code_used_at` (guarded so two concurrent checks cannot both
    succeed) and commits.

    Args:
        db: Database session
        parcel: Parcel the code is presented for
        code: Presented code (case and whitespace insensitive)
        policy: Override for settings.pickup_code_policy

    Returns:
        PickupVerification
    """
    policy = policy or settings.pickup_code_policy

    if parcel.status not in PICKUP_ELIGIBLE_STATUSES:
        return PickupVerification(False, PickupCodeReason.NOT_ELIGIBLE)

    if not parcel.pickup_code:
        return PickupVerification(False, PickupCodeReason.NO_CODE_ISSUED)

    if not code_matches(parcel, code):
        return PickupVerification(False, PickupCodeReason.MISMATCH)

    if policy != SINGLE_USE:
        return PickupVerification(True, PickupCodeReason.OK)

    if parcel.pickup_code_used_at is not None:
        return PickupVerification(False, PickupCodeReason.ALREADY_USED, used_at=parcel.pickup_code_used_at)

    used_at = datetime.now(timezone.utc)
    result = await db.execute(
        update(Parcel)
        .where(Parcel.id == parcel.id, Parcel.pickup_code_used_at.is_(None))
        .values(pickup_code_used_at=used_at)
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    if result.rowcount != 1:
        await db.refresh(parcel)
        return PickupVerification(False, PickupCodeReason.ALREADY_USED, used_at=parcel.pickup_code_used_at)

    await db.refresh(parcel)
    return PickupVerification(True, PickupCodeReason.OK, used_at=used_at)


async def check_envelope_code(db: AsyncSession, parcel: Parcel, code: str) -> None:
    """
    Validate the pickup code carried inside a scanned QR envelope.

    In a pickup-eligible status the code goes through verify_pickup_code,
    so the configured policy applies (a single-use code is burned here).
    Outside that window the code must still match the parcel's own.

    Raises:
        PickupCodeRejectedError: Code mismatched or was refused by the policy
    """
    if parcel.status in PICKUP_ELIGIBLE_STATUSES:
        verification = await verify_pickup_code(db, parcel, code)
        if not verification.valid:
            raise PickupCodeRejectedError(parcel.tracking_code, verification.reason)
    elif not code_matches(parcel, code):
        raise PickupCodeRejectedError(parcel.tracking_code, PickupCodeReason.MISMATCH)
