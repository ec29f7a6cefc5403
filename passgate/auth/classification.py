"""Mapping from platform failure names to passgate ceremony errors.

New platform categories are added to the tables here; ceremony code only
calls ``classify``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from passgate.exceptions import (
    CeremonyCancelledError,
    CeremonyError,
    CeremonyFailedError,
    CeremonyTimeoutError,
    CredentialStateError,
    DuplicateCredentialError,
    UnsupportedError,
)
from passgate.types import CeremonyKind, PlatformErrorName

if TYPE_CHECKING:
    from passgate.auth.platform import PlatformError

_COMMON: dict[str, type[CeremonyError]] = {
    PlatformErrorName.NOT_ALLOWED: CeremonyCancelledError,
    PlatformErrorName.ABORT: CeremonyCancelledError,
    PlatformErrorName.TIMEOUT: CeremonyTimeoutError,
}

ERROR_TABLE: dict[CeremonyKind, dict[str, type[CeremonyError]]] = {
    CeremonyKind.REGISTRATION: {
        **_COMMON,
        PlatformErrorName.INVALID_STATE: DuplicateCredentialError,
        PlatformErrorName.NOT_SUPPORTED: UnsupportedError,
    },
    CeremonyKind.AUTHENTICATION: {
        **_COMMON,
        PlatformErrorName.INVALID_STATE: CredentialStateError,
    },
}


def error_kind(kind: CeremonyKind, platform_error_name: str) -> type[CeremonyError]:
    """Return the error class for a platform failure name."""
    return ERROR_TABLE[kind].get(platform_error_name, CeremonyFailedError)


def classify(kind: CeremonyKind, error: PlatformError) -> CeremonyError:
    """Build the passgate error for a platform failure."""
    error_cls = error_kind(kind, error.name)
    if error_cls is CeremonyFailedError and error.message:
        return CeremonyFailedError(error.message)
    return error_cls()
