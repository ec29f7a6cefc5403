"""Enums and type aliases for passgate."""

from enum import StrEnum


class SessionStatus(StrEnum):
    UNKNOWN = "unknown"
    CHECKING = "checking"
    AUTHENTICATED = "authenticated"
    ANONYMOUS = "anonymous"


class GateVerdict(StrEnum):
    ADMIT = "admit"
    REDIRECT = "redirect"
    PENDING = "pending"


class CeremonyKind(StrEnum):
    REGISTRATION = "registration"
    AUTHENTICATION = "authentication"


class PlatformErrorName(StrEnum):
    """DOMException names a platform authenticator reports on failure."""

    NOT_ALLOWED = "NotAllowedError"
    ABORT = "AbortError"
    INVALID_STATE = "InvalidStateError"
    NOT_SUPPORTED = "NotSupportedError"
    TIMEOUT = "TimeoutError"
    SECURITY = "SecurityError"
    UNKNOWN = "UnknownError"
