"""
Custom exceptions for the touchpoint attribution service.

This module defines specific exception types for different error scenarios,
so callers can tell recoverable fetch failures apart from request errors
and from bugs in the credit calculation.
"""


class AttributionError(Exception):
    """Base exception for attribution-related errors."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(AttributionError):
    """Raised when input validation fails."""

    def __init__(self, message: str, field: str = None, value=None):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = value
        super().__init__(message, details)
        self.field = field
        self.value = value


class InvalidDateRangeError(ValidationError):
    """Raised when a date window cannot be parsed or is inverted."""

    def __init__(self, message: str, start=None, end=None):
        super().__init__(message, field="dateRange")
        if start is not None:
            self.details["start"] = str(start)
        if end is not None:
            self.details["end"] = str(end)
        self.start = start
        self.end = end


class ConfigurationError(AttributionError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, setting_key: str = None):
        details = {}
        if setting_key:
            details["setting_key"] = setting_key
        super().__init__(message, details)
        self.setting_key = setting_key


class OpportunityFetchError(AttributionError):
    """Raised when an opportunity's touchpoints cannot be collected."""

    def __init__(self, message: str, opportunity_id: str = None, details: dict = None):
        details = dict(details or {})
        if opportunity_id:
            details["opportunity_id"] = opportunity_id
        super().__init__(message, details)
        self.opportunity_id = opportunity_id


class OpportunityNotFoundError(OpportunityFetchError):
    """Raised when an opportunity cannot be found."""

    def __init__(self, opportunity_id: str):
        super().__init__(f"Opportunity not found: {opportunity_id}", opportunity_id)


class StoreUnavailableError(OpportunityFetchError):
    """Raised when the record store cannot be read."""

    def __init__(self, message: str, opportunity_id: str = None, operation: str = None):
        details = {"operation": operation} if operation else {}
        super().__init__(message, opportunity_id, details)
        self.operation = operation


class InvalidRecordError(OpportunityFetchError):
    """Raised when a stored opportunity or activity row cannot be converted."""

    def __init__(self, message: str, opportunity_id: str = None, cause: str = None):
        details = {"cause": cause} if cause else {}
        super().__init__(message, opportunity_id, details)
        self.cause = cause


class ComputationInvariantError(AttributionError):
    """Raised when a model's credit percentages do not total 100."""

    def __init__(self, model: str, total: float, tolerance: float):
        super().__init__(
            f"{model} credits total {total:.4f}, expected 100 (tolerance {tolerance})",
            {"model": model, "total": total, "tolerance": tolerance}
        )
        self.model = model
        self.total = total
        self.tolerance = tolerance


class AuthenticationError(AttributionError):
    """Raised when authentication fails."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message)


class AuthorizationError(AttributionError):
    """Raised when user lacks permission for an operation."""

    def __init__(self, message: str = "Insufficient permissions", required_role: str = None):
        details = {}
        if required_role:
            details["required_role"] = required_role
        super().__init__(message, details)
        self.required_role = required_role
