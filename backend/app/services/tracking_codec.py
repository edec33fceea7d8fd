"""
Tracking code codec.

Turns a raw scanned or typed string into a classified, normalized
reference. Classification order matters: a string that fits several
formats takes the first class that matches.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from backend.app.core.config import settings
from backend.app.core.exceptions import MalformedPayloadError, UnsupportedPayloadError

PARCEL_PATTERN = re.compile(r"^[A-Z0-9\-_.]{8,25}$")
PICKUP_CODE_PATTERN = re.compile(r"^[A-Z0-9]{6,10}$")
PARTNER_PATTERN = re.compile(r"^[0-9A-F]{8}-[0-9A-F]{4}-[0-9A-F]{4}-[0-9A-F]{4}-[0-9A-F]{12}$")

_WHITESPACE = re.compile(r"\s+")


class PayloadClass(str, Enum):
    PARCEL = "PARCEL"
    PICKUP_CODE = "PICKUP_CODE"
    PARTNER = "PARTNER"
    GENERAL = "GENERAL"


@dataclass(frozen=True)
class ClassifiedPayload:
    """Result of classifying one scan payload."""
    payload_class: PayloadClass
    normalized_value: str
    pickup_code: Optional[str] = None


def normalize(raw: str) -> str:
    """Strip all whitespace and uppercase."""
    return _WHITESPACE.sub("", raw).upper()


def _classify_plain(value: str) -> PayloadClass:
    if PARCEL_PATTERN.match(value):
        return PayloadClass.PARCEL
    if PICKUP_CODE_PATTERN.match(value):
        return PayloadClass.PICKUP_CODE
    if PARTNER_PATTERN.match(value):
        return PayloadClass.PARTNER
    return PayloadClass.GENERAL


def _parse_envelope(value: str) -> ClassifiedPayload:
    # PREFIX:TRACKING or PREFIX:TRACKING:PICKUP_CODE
    parts = value.split(":")
    if len(parts) > 3:
        raise MalformedPayloadError("too many envelope segments")

    tracking = parts[1]
    if not PARCEL_PATTERN.match(tracking):
        raise MalformedPayloadError("envelope does not carry a valid tracking code")

    pickup_code = None
    if len(parts) == 3:
        pickup_code = parts[2]
        if not PICKUP_CODE_PATTERN.match(pickup_code):
            raise MalformedPayloadError("envelope carries an invalid pickup code")

    return ClassifiedPayload(PayloadClass.PARCEL, tracking, pickup_code)


def classify(raw: Optional[str]) -> ClassifiedPayload:
    """
    Classify a scan payload.

    Args:
        raw: The scanned or typed string

    Returns:
        ClassifiedPayload with the class and the normalized value

    Raises:
        MalformedPayloadError: payload is empty, oversized, or a broken QR envelope
    """
    if raw is None:
        raise MalformedPayloadError("empty payload")
    if len(raw) > settings.scan_payload_max_length:
        raise MalformedPayloadError(
            f"payload exceeds {settings.scan_payload_max_length} characters"
        )

    value = normalize(raw)
    if not value:
        raise MalformedPayloadError("empty payload")

    prefix = settings.qr_envelope_prefix.upper()
    if prefix and value.startswith(prefix + ":"):
        return _parse_envelope(value)

    return ClassifiedPayload(_classify_plain(value), value)


def classify_as(raw: Optional[str], expected: PayloadClass) -> ClassifiedPayload:
    """
    Classify and insist on one payload class.

    Raises:
        MalformedPayloadError: as for classify()
        UnsupportedPayloadError: payload is valid but of another class
    """
    payload = classify(raw)
    if payload.payload_class != expected:
        raise UnsupportedPayloadError(payload.payload_class.value, expected.value)
    return payload
