"""
Custom exceptions and error handlers for consistent error responses.

Every failure the handoff core can produce is an AppException subclass
tagged with an ErrorKind, so callers (and the batch committer) can tell
failures apart by kind rather than by message.
"""

import enum
import logging
from typing import Any, Dict

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger("parcel_handoff.errors")


class ErrorKind(str, enum.Enum):
    """Distinguishable failure kinds returned by the handoff core."""
    NOT_FOUND = "NOT_FOUND"
    MALFORMED = "MALFORMED"
    UNSUPPORTED = "UNSUPPORTED"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    FORBIDDEN = "FORBIDDEN"
    CONFLICT = "CONFLICT"
    DUPLICATE_SCAN = "DUPLICATE_SCAN"
    PICKUP_CODE_REJECTED = "PICKUP_CODE_REJECTED"


class AppException(Exception):
    """Base application exception."""

    kind: ErrorKind = None

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ParcelNotFoundError(AppException):
    """Raised when a parcel id or tracking code resolves to nothing."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, reference: Any):
        super().__init__(
            message=f"Parcel {reference} not found",
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": "parcel", "reference": reference}
        )


class MalformedPayloadError(AppException):
    """Raised when a scan payload fails codec validation."""

    kind = ErrorKind.MALFORMED

    def __init__(self, reason: str):
        super().__init__(
            message=f"Malformed scan payload: {reason}",
            error_code="ERR_SCAN_001",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"reason": reason}
        )


class UnsupportedPayloadError(AppException):
    """Raised when a classified payload is not usable for the operation."""

    kind = ErrorKind.UNSUPPORTED

    def __init__(self, payload_class: str, expected: str):
        super().__init__(
            message=f"Payload of class {payload_class} is not supported here, expected {expected}",
            error_code="ERR_SCAN_002",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"payload_class": payload_class, "expected": expected}
        )


class InvalidTransitionError(AppException):
    """Raised when the target status is unreachable from the current one."""

    kind = ErrorKind.INVALID_TRANSITION

    def __init__(self, current: str, target: str, reason: str = "no such edge"):
        super().__init__(
            message=f"Cannot move parcel from {current} to {target}: {reason}",
            error_code="ERR_TRANSITION_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"current_status": current, "target_status": target, "reason": reason}
        )


class TransitionForbiddenError(AppException):
    """Raised when the edge exists but the acting role may not take it."""

    kind = ErrorKind.FORBIDDEN

    def __init__(self, current: str, target: str, role: str, allowed_roles: list[str]):
        super().__init__(
            message=f"Role {role} may not move parcel from {current} to {target}",
            error_code="ERR_PERM_001",
            status_code=status.HTTP_403_FORBIDDEN,
            details={
                "current_status": current,
                "target_status": target,
                "role": role,
                "allowed_roles": allowed_roles,
            }
        )


class ConcurrentModificationError(AppException):
    """Raised when another writer changed the parcel first. Safe to retry."""

    kind = ErrorKind.CONFLICT

    def __init__(self, parcel_id: str, expected: str = None, actual: str = None):
        details = {"parcel_id": parcel_id}
        if expected is not None:
            details["expected_status"] = expected
        if actual is not None:
            details["actual_status"] = actual
        super().__init__(
            message=f"Parcel {parcel_id} was modified concurrently; re-read and retry",
            error_code="ERR_CONFLICT_001",
            status_code=status.HTTP_409_CONFLICT,
            details=details
        )


class DuplicateTrackingCodeError(AppException):
    """Raised when a new parcel reuses an existing tracking code."""

    kind = ErrorKind.CONFLICT

    def __init__(self, tracking_code: str):
        super().__init__(
            message=f"Tracking code {tracking_code} is already registered",
            error_code="ERR_CONFLICT_002",
            status_code=status.HTTP_409_CONFLICT,
            details={"tracking_code": tracking_code}
        )


class PickupCodeRejectedError(AppException):
    """Raised when a scanned QR envelope carries a pickup code the parcel does not accept."""

    kind = ErrorKind.PICKUP_CODE_REJECTED

    def __init__(self, tracking_code: str, reason: str):
        super().__init__(
            message=f"Pickup code on scan of {tracking_code} rejected: {reason}",
            error_code="ERR_PICKUP_001",
            status_code=status.HTTP_403_FORBIDDEN,
            details={"tracking_code": tracking_code, "reason": reason}
        )


class ScanSessionClosedError(RuntimeError):
    """Raised when a committed or discarded scan session is used again."""


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "kind": exc.kind.value if exc.kind else None,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "kind": None,
            "message": exc.detail,
            "details": {}
        },
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "kind": None,
            "message": "Validation error",
            "details": {
                "errors": exc.errors()
            }
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "kind": None,
            "message": "An internal server error occurred",
            "details": {}
        }
    )
