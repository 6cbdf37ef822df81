"""Typed failures raised by the catalog, loan and account services.

Every error carries the HTTP status and the notification title the API
answers with, so routes never translate them by hand.
"""
from typing import Optional


class LibraryError(Exception):
    status_code = 400
    title = "Operation failed"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> dict:
        return {"error": type(self).__name__, "title": self.title, "detail": self.detail}


class NotFoundError(LibraryError):
    status_code = 404
    title = "Not found"


class ValidationError(LibraryError):
    status_code = 422
    title = "Invalid data"


class UniquenessError(LibraryError):
    status_code = 409
    title = "Already registered"


class UnavailableError(LibraryError):
    status_code = 409
    title = "Book not available"


class IneligibleMemberError(LibraryError):
    status_code = 409
    title = "Member has pending fines"


class InvalidAmountError(LibraryError):
    status_code = 422
    title = "Invalid amount"


class InvalidStateError(LibraryError):
    status_code = 409
    title = "Invalid state"


class HasActiveLoansError(InvalidStateError):
    title = "Record has open loans"


class ConflictError(LibraryError):
    status_code = 409
    title = "Concurrent modification"


class AuthenticationError(LibraryError):
    status_code = 401
    title = "Authentication failed"


class PermissionDeniedError(LibraryError):
    status_code = 403
    title = "Not allowed"


class EmailDeliveryError(LibraryError):
    status_code = 502
    title = "Email not sent"


class CooldownError(LibraryError):
    status_code = 429
    title = "Too soon"

    def __init__(self, detail: str, remaining_seconds: int):
        super().__init__(detail)
        self.remaining_seconds = remaining_seconds

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["remainingSeconds"] = self.remaining_seconds
        return data


def not_found(kind: str, record_id: Optional[object]) -> NotFoundError:
    return NotFoundError(f"{kind} {record_id} not found")
