"""
Error kinds shared by the identity and certificate workflow services.

Why:
    Services raise these instead of returning status tuples so the web adapter
    can map every failure to one stable JSON shape and HTTP status class in a
    single exception handler.

Contract:
    Each error carries a machine-readable `code` (stable, used by clients and
    tests) and a human-readable `detail` that is safe to show to end users.
    `status_code` is the HTTP status class the adapter answers with.
"""
from __future__ import annotations


class PortalError(Exception):
    """Base class for all expected failures of the portal core."""

    status_code = 500
    default_code = "internal_error"
    default_detail = "Unexpected error"

    def __init__(self, code: str | None = None, detail: str | None = None):
        self.code = code or self.default_code
        self.detail = detail or self.default_detail
        super().__init__(self.code)

    def to_payload(self) -> dict:
        return {"success": False, "error": self.code, "detail": self.detail}


class ValidationError(PortalError):
    """Missing or malformed input."""

    status_code = 400
    default_code = "bad_request"
    default_detail = "Invalid input"


class InvalidState(PortalError):
    """Transition attempted on a request that is no longer pending."""

    status_code = 400
    default_code = "request_not_pending"
    default_detail = "Request has already been processed"


class OtpVerificationError(PortalError):
    status_code = 400
    default_code = "otp_invalid"
    default_detail = "OTP verification failed"


class OtpNotFound(OtpVerificationError):
    default_code = "otp_not_found"
    default_detail = "OTP not found or expired"


class OtpExpired(OtpVerificationError):
    default_code = "otp_expired"
    default_detail = "OTP expired"


class OtpMismatch(OtpVerificationError):
    default_code = "otp_mismatch"
    default_detail = "Invalid OTP"


class Unauthenticated(PortalError):
    """Missing, unknown or expired session token."""

    status_code = 401
    default_code = "unauthenticated"
    default_detail = "Invalid session"


class InvalidCredentials(PortalError):
    """Login failed. Deliberately identical for unknown email, wrong password and wrong role."""

    status_code = 401
    default_code = "invalid_credentials"
    default_detail = "Invalid credentials"


class Forbidden(PortalError):
    status_code = 403
    default_code = "forbidden"
    default_detail = "Admin access required"


class NotFound(PortalError):
    status_code = 404
    default_code = "request_not_found"
    default_detail = "Request not found"


class Conflict(PortalError):
    status_code = 409
    default_code = "account_exists"
    default_detail = "User already exists"


class UpstreamFailure(PortalError):
    """SMS gateway or object storage unavailable or erroring. Not retried by the core."""

    status_code = 500
    default_code = "upstream_failure"
    default_detail = "External service unavailable"


__all__ = [
    "PortalError",
    "ValidationError",
    "InvalidState",
    "OtpVerificationError",
    "OtpNotFound",
    "OtpExpired",
    "OtpMismatch",
    "Unauthenticated",
    "InvalidCredentials",
    "Forbidden",
    "NotFound",
    "Conflict",
    "UpstreamFailure",
]
