"""
Scan Session (Domain Logic).

A short-lived, per-actor value object that accumulates the tracking codes
scanned during one batch handoff and reconciles them against the expected
manifest. It touches no durable state; only HandoffCommitter.commit turns
a session into transitions.
"""

import enum
from dataclasses import dataclass
from typing import Iterable, Optional

from backend.app.core.exceptions import MalformedPayloadError, ScanSessionClosedError
from backend.app.models.parcel_enums import HandoffOperation
from backend.app.services.tracking_codec import PayloadClass, classify, normalize


class ScanOutcome(str, enum.Enum):
    ACCEPTED = "ACCEPTED"
    DUPLICATE_SCAN = "DUPLICATE_SCAN"
    UNSUPPORTED = "UNSUPPORTED"
    MALFORMED = "MALFORMED"


@dataclass(frozen=True)
class ScanResult:
    outcome: ScanOutcome
    raw_payload: str
    tracking_code: Optional[str] = None
    payload_class: Optional[PayloadClass] = None
    pickup_code: Optional[str] = None
    message: Optional[str] = None


@dataclass(frozen=True)
class ReconciliationReport:
    matched: frozenset
    missing: frozenset
    extra: frozenset
    complete: bool
    open_ended: bool


def reconcile_sets(expected: Iterable[str], scanned: Iterable[str]) -> ReconciliationReport:
    """
    Compare an expected manifest with what was scanned.

    Pure set arithmetic: independent of scan order and safe to repeat. With
    an empty manifest the session is open-ended, nothing can be missing and
    `complete` stays False.
    """
    expected_set = frozenset(expected)
    scanned_set = frozenset(scanned)
    open_ended = not expected_set

    matched = scanned_set & expected_set
    missing = frozenset() if open_ended else expected_set - scanned_set
    extra = scanned_set - expected_set

    return ReconciliationReport(
        matched=matched,
        missing=missing,
        extra=extra,
        complete=not open_ended and not missing and not extra,
        open_ended=open_ended,
    )


class ScanSession:
    """
    One batch handoff in progress.

    Usage:
        session = ScanSession.start(HandoffOperation.PICKUP, manifest)
        session.scan("ADERA:AD1234567890:K3X9QZ")
        report = session.reconcile()
        outcome = await HandoffCommitter.commit(db, session, actor)
    """

    def __init__(self, operation: HandoffOperation, expected: Iterable[str] = ()):
        self.operation = operation
        normalized = (normalize(code) for code in expected if code)
        self.expected = frozenset(code for code in normalized if code)
        self._scanned: dict[str, Optional[str]] = {}
        self._closed = False

    @classmethod
    def start(cls, operation: HandoffOperation, expected: Iterable[str] = ()) -> "ScanSession":
        return cls(operation, expected)

    @property
    def scanned(self) -> frozenset:
        return frozenset(self._scanned)

    @property
    def closed(self) -> bool:
        return self._closed

    def pickup_code_for(self, tracking_code: str) -> Optional[str]:
        """Pickup code carried by the QR envelope this parcel was scanned from."""
        return self._scanned.get(tracking_code)

    def _ensure_open(self):
        if self._closed:
            raise ScanSessionClosedError("Scan session is already committed or discarded")

    def scan(self, raw_payload: str) -> ScanResult:
        """
        Record one scanned payload.

        Only parcel references are accepted. A code already in the session
        yields DUPLICATE_SCAN and leaves the session unchanged.
        """
        self._ensure_open()

        try:
            payload = classify(raw_payload)
        except MalformedPayloadError as exc:
            return ScanResult(ScanOutcome.MALFORMED, raw_payload, message=exc.message)

        if payload.payload_class != PayloadClass.PARCEL:
            return ScanResult(
                ScanOutcome.UNSUPPORTED,
                raw_payload,
                payload_class=payload.payload_class,
                message=f"Expected a parcel reference, got {payload.payload_class.value}",
            )

        code = payload.normalized_value
        if code in self._scanned:
            return ScanResult(
                ScanOutcome.DUPLICATE_SCAN,
                raw_payload,
                tracking_code=code,
                payload_class=payload.payload_class,
                message="Already scanned",
            )

        self._scanned[code] = payload.pickup_code
        return ScanResult(
            ScanOutcome.ACCEPTED,
            raw_payload,
            tracking_code=code,
            payload_class=payload.payload_class,
            pickup_code=payload.pickup_code,
        )

    def reconcile(self) -> ReconciliationReport:
        return reconcile_sets(self.expected, self._scanned)

    def close(self):
        self._ensure_open()
        self._closed = True

    def discard(self):
        """Abandon the session. Nothing durable was touched, so nothing to undo."""
        self._closed = True
        self._scanned.clear()
