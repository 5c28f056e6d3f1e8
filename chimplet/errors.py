"""
errors.py

Error classes for the Chimplet facade.

MailchimpError and its subclasses are raised by the connection only and never
leave the facade. The domain errors below them are built by the facade itself.
"""

from typing import Optional


class MailchimpError(Exception):
    """Raised when the MailChimp API returns an error response."""

    kind = "service_error"

    def __init__(self, message: str = "", code: Optional[int] = None, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status


class TransportError(MailchimpError):
    """The request never produced a usable API response (network failure, non-JSON body)."""


class ResourceNotFoundError(MailchimpError):
    """HTTP 404 on any resource."""

    kind = "not_found"


class ListDoesNotExistError(ResourceNotFoundError):
    """The requested list id is unknown to the account."""


class InvalidOptionError(MailchimpError):
    """The list does not support the requested option (e.g. no interest groupings)."""

    kind = "invalid_option"


class InvalidSegmentError(MailchimpError):
    """The remote service rejected the segment conditions."""

    kind = "invalid_segment"


# ─── Remote error codes ──────────────────────────────────────────────────────
LIST_DOES_NOT_EXIST = 200
NO_INTEREST_GROUPINGS = 211


# ─── Domain errors ───────────────────────────────────────────────────────────

class EmptySegmentError(MailchimpError):
    """The segment matches 0 recipients, so no campaign is created."""

    kind = "empty_segment"

    def __init__(self, message: str = "The segment is empty (0 recipients).", code: Optional[int] = None):
        super().__init__(message, code=code)


class SegmentTestError(MailchimpError):
    """The segment test returned something other than a recipient total."""

    kind = "segment_test_failed"

    def __init__(self, message: str = "The segment test failed for an unknown reason. Please try again later.",
                 code: Optional[int] = None):
        super().__init__(message, code=code)


class UnsupportedOperationError(LookupError):
    """A pass-through call named an operation the facade does not forward."""

    def __init__(self, operation: str):
        super().__init__(f'The operation "{operation}" is not supported by ListServiceFacade.')
        self.operation = operation
