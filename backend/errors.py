"""Exception hierarchy shared by the service and HTTP layers."""


class TrackingError(Exception):
    """Base exception for all tracking backend errors."""


class NotFoundError(TrackingError):
    """Raised when an invoice, occurrence or catalog entry does not exist."""


class ConflictError(TrackingError):
    """Raised when a write would duplicate an existing record."""


class InvalidArgumentError(TrackingError):
    """Raised for malformed inputs rejected before any aggregation."""
