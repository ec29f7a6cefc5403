"""Exception hierarchy for passgate.

Every error carries a ``guidance`` string meant to be shown to the user as-is.
None of them are fatal: callers recover at the granularity of one ceremony.
"""


class PassgateError(Exception):
    """Base exception for all passgate errors."""

    guidance = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.guidance)


class ValidationError(PassgateError):
    """Raised when user input has the wrong shape (e.g. a short username)."""

    guidance = "Please enter a valid username."


class DuplicateUserError(PassgateError):
    """Raised when registering a username that already has a credential."""

    guidance = "This user already exists. Try signing in or pick another name."


class UnknownUserError(PassgateError):
    """Raised when authenticating a username with no stored credential."""

    guidance = "User not found. Do you need to register first?"


class MalformedInputError(PassgateError):
    """Raised when url-safe text cannot be decoded."""

    guidance = "Stored credential data is corrupted."


class StorageError(PassgateError):
    """Raised when storage operations fail."""

    guidance = "Your passkey records could not be saved. Please try again."


class ConfigError(PassgateError):
    """Raised when configuration is invalid."""

    guidance = "passgate is misconfigured."


# ---------------------------------------------------------------------------
# Ceremony outcomes
# ---------------------------------------------------------------------------


class CeremonyError(PassgateError):
    """Base class for failures reported while a ceremony was running."""

    guidance = "The passkey operation failed. Check that your device has biometrics set up."


class CeremonyCancelledError(CeremonyError):
    """The user declined or aborted the ceremony."""

    guidance = "Operation cancelled. Try again and approve the passkey prompt."


class CeremonyTimeoutError(CeremonyError):
    """The authenticator did not answer within the ceremony timeout."""

    guidance = "The passkey prompt timed out. Try again."


class CeremonyFailedError(CeremonyError):
    """Catch-all for platform failures with no more specific kind."""


class UnsupportedError(CeremonyError):
    """The authenticator cannot satisfy the requested parameters."""

    guidance = "Your device does not support creating passkeys."


class DuplicateCredentialError(CeremonyError):
    """The authenticator already holds a credential for this identity."""

    guidance = "A passkey for this user already exists on this device."


class CredentialStateError(CeremonyError):
    """The authenticator reports the stored credential is no longer valid."""

    guidance = "There is a problem with your passkey. You may need to register again."


class CeremonyInProgressError(CeremonyError):
    """A second ceremony was requested while one is still pending."""

    guidance = "Another passkey prompt is already open. Finish or cancel it first."
