"""Contract for the platform authenticator a ceremony talks to."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from webauthn.helpers.structs import (
        PublicKeyCredentialCreationOptions,
        PublicKeyCredentialRequestOptions,
    )

    from passgate.models.domain import PlatformAssertion, PlatformCredential


class PlatformError(Exception):
    """Failure reported by the platform, tagged with its DOMException name."""

    def __init__(self, name: str, message: str = "") -> None:
        super().__init__(message or name)
        self.name = name
        self.message = message


@runtime_checkable
class PlatformAuthenticator(Protocol):
    """A device capability that creates and exercises public-key credentials.

    ``create_credential`` and ``get_assertion`` may wait on the user for as
    long as they like; the ceremony engine bounds them with its own timeout
    and cancels the awaiting task on abort. Either may return ``None`` when
    the platform produced nothing without raising.
    """

    def is_supported(self) -> bool:
        """Whether the WebAuthn API is present at all."""
        ...

    async def platform_authenticator_available(self) -> bool:
        """Whether a user-verifying platform authenticator is available."""
        ...

    async def create_credential(
        self, options: PublicKeyCredentialCreationOptions
    ) -> PlatformCredential | None: ...

    async def get_assertion(
        self, options: PublicKeyCredentialRequestOptions
    ) -> PlatformAssertion | None: ...


@runtime_checkable
class CredentialKeyring(Protocol):
    """A platform whose stored credentials the application may remove."""

    async def forget(self, raw_id: bytes) -> bool:
        """Delete the private key for ``raw_id``. Returns False if absent."""
        ...
