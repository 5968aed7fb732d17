"""Symbolic business-rule errors.

Each error carries a stable ``code`` that clients map to their own
wording, plus the HTTP status the API answers with.
"""

import datetime
from typing import Any, Dict, Optional

from accend.clock import iso_utc


class AccendError(Exception):
    code = "SERVER_ERROR"
    status_code = 500

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.code
        super().__init__(self.detail)

    def extra(self) -> Dict[str, Any]:
        return {}


class Forbidden(AccendError):
    code = "FORBIDDEN"
    status_code = 403


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------

class EmailExists(AccendError):
    code = "EMAIL_EXISTS"
    status_code = 409


class InvalidCredentials(AccendError):
    code = "INVALID_CREDENTIALS"
    status_code = 401


class InvalidName(AccendError):
    code = "INVALID_NAME"
    status_code = 422


class UserNotFound(AccendError):
    code = "USER_NOT_FOUND"
    status_code = 404


# ---------------------------------------------------------------------------
# Environment bookings
# ---------------------------------------------------------------------------

class EnvNotFound(AccendError):
    code = "ENV_NOT_FOUND"
    status_code = 404


class InvalidDuration(AccendError):
    code = "INVALID_DURATION"
    status_code = 422


class InsufficientAccess(AccendError):
    code = "INSUFFICIENT_ACCESS"
    status_code = 403


class UserAlreadyHasActiveBooking(AccendError):
    code = "USER_ALREADY_HAS_ACTIVE_BOOKING"
    status_code = 409


class EnvNotFree(AccendError):
    code = "ENV_NOT_FREE"
    status_code = 409

    def __init__(self, free_at: datetime.datetime):
        self.free_at = free_at
        super().__init__(f"Environment is busy until {iso_utc(free_at)}")

    def extra(self) -> Dict[str, Any]:
        return {"freeAt": iso_utc(self.free_at)}


class BookingNotFound(AccendError):
    code = "BOOKING_NOT_FOUND"
    status_code = 404


class NotActive(AccendError):
    code = "NOT_ACTIVE"
    status_code = 409


class InvalidExtension(AccendError):
    code = "INVALID_EXTENSION"
    status_code = 422


class ExtensionLimitExceeded(AccendError):
    code = "EXTENSION_LIMIT_EXCEEDED"
    status_code = 409


# ---------------------------------------------------------------------------
# Request ledger
# ---------------------------------------------------------------------------

class ResourceNotFound(AccendError):
    code = "RESOURCE_NOT_FOUND"
    status_code = 404


class RequestNotFound(AccendError):
    code = "REQUEST_NOT_FOUND"
    status_code = 404


class RequestNotPending(AccendError):
    code = "REQUEST_NOT_PENDING"
    status_code = 409
