"""Error taxonomy for parameter resolution and deployment dispatch."""
from enum import Enum
from typing import Any, List, Optional


class ErrorKind(str, Enum):
    SOURCE_UNAVAILABLE = "SourceUnavailable"
    MALFORMED_SOURCE = "MalformedSource"
    MISSING_REQUIRED_FIELD = "MissingRequiredField"
    DISALLOWED_VALUE = "DisallowedValue"
    UNAUTHORIZED = "Unauthorized"
    BACKEND_UNAVAILABLE = "BackendUnavailable"
    CONFIGURATION_MISSING = "ConfigurationMissing"
    INVALID_REQUEST = "InvalidRequest"


class LaunchpadError(Exception):
    """Base class for all errors surfaced to callers."""

    kind: ErrorKind
    status_code: int = 500

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class SourceUnavailable(LaunchpadError):
    """Raised when a template or parameters document cannot be retrieved."""

    kind = ErrorKind.SOURCE_UNAVAILABLE

    def __init__(self, location: str, reason: str):
        super().__init__(f"Failed to retrieve {location}", details=reason)
        self.location = location


class MalformedSource(LaunchpadError):
    """Raised when a retrieved document is not a usable template or parameters file."""

    kind = ErrorKind.MALFORMED_SOURCE

    def __init__(self, location: str, reason: str):
        super().__init__(f"Invalid document at {location}", details=reason)
        self.location = location


class ValidationError(LaunchpadError):
    """Raised for caller input that fails validation before any backend call."""

    status_code = 400


class InvalidRequest(ValidationError):
    """Raised when a request does not have the expected shape or asks for a local document."""

    kind = ErrorKind.INVALID_REQUEST


class MissingRequiredField(ValidationError):
    kind = ErrorKind.MISSING_REQUIRED_FIELD

    def __init__(self, fields: List[str]):
        super().__init__(f"{', '.join(fields)} {'is' if len(fields) == 1 else 'are'} required")
        self.fields = fields


class DisallowedValue(ValidationError):
    kind = ErrorKind.DISALLOWED_VALUE

    def __init__(self, name: str, value: Any, allowed: List[Any]):
        super().__init__(
            f"Value {value!r} is not allowed for parameter '{name}'",
            details=f"Allowed values: {', '.join(str(a) for a in allowed)}",
        )
        self.name = name
        self.value = value
        self.allowed = list(allowed)


class Unauthorized(LaunchpadError):
    """Raised when a backend rejects the configured credential."""

    kind = ErrorKind.UNAUTHORIZED
    status_code = 401

    def __init__(self, message: str, remediation: str, status: Optional[int] = 401, raw_body: str = ""):
        super().__init__(message, details=remediation)
        self.status = status
        self.raw_body = raw_body


class BackendUnavailable(LaunchpadError):
    """Raised for any non-success backend response not otherwise classified."""

    kind = ErrorKind.BACKEND_UNAVAILABLE
    status_code = 502

    def __init__(self, message: str, status: Optional[int] = None, raw_body: str = "", timed_out: bool = False):
        super().__init__(message)
        self.status = status
        self.raw_body = raw_body
        self.timed_out = timed_out
        if timed_out:
            self.status_code = 504


class ConfigurationMissing(LaunchpadError):
    """Raised at startup when the active backend lacks required settings."""

    kind = ErrorKind.CONFIGURATION_MISSING

    def __init__(self, backend: str, missing: List[str]):
        super().__init__(
            f"Missing configuration for the {backend} backend: {', '.join(missing)}",
            details="Set the listed environment variables or add them to the configuration file.",
        )
        self.backend = backend
        self.missing = missing
