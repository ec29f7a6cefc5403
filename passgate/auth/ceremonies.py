"""WebAuthn ceremony engine: registration and authentication attempts."""

from __future__ import annotations

import asyncio
import contextlib
import hashlib
from typing import TYPE_CHECKING, Any, TypeVar
from urllib.parse import urlparse

import structlog
from webauthn import generate_authentication_options, generate_registration_options
from webauthn.helpers.cose import COSEAlgorithmIdentifier
from webauthn.helpers.structs import (
    AttestationConveyancePreference,
    AuthenticatorAttachment,
    AuthenticatorSelectionCriteria,
    PublicKeyCredentialCreationOptions,
    PublicKeyCredentialDescriptor,
    PublicKeyCredentialRequestOptions,
    ResidentKeyRequirement,
    UserVerificationRequirement,
)

from passgate.auth import codec
from passgate.auth.challenge_ledger import ChallengeLedger
from passgate.auth.classification import classify
from passgate.auth.platform import PlatformError
from passgate.auth.verifier import UnverifiedAssertionPolicy
from passgate.exceptions import (
    CeremonyCancelledError,
    CeremonyFailedError,
    CeremonyInProgressError,
    CeremonyTimeoutError,
    DuplicateUserError,
    StorageError,
    UnknownUserError,
    UnsupportedError,
    ValidationError,
)
from passgate.models.database import CredentialRecord
from passgate.models.domain import AssertionResult
from passgate.types import CeremonyKind

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Coroutine

    from passgate.auth.platform import PlatformAuthenticator
    from passgate.auth.verifier import AssertionVerifier
    from passgate.config.settings import Settings
    from passgate.storage.repositories.credentials import CredentialDirectory

logger = structlog.get_logger(__name__)

T = TypeVar("T")

MIN_USERNAME_LENGTH = 3
DEFAULT_TIMEOUT_MS = 60_000
MAX_USER_HANDLE_BYTES = 64

SUPPORTED_ALGORITHMS = [
    COSEAlgorithmIdentifier.ECDSA_SHA_256,
    COSEAlgorithmIdentifier.RSASSA_PKCS1_v1_5_SHA_256,
]


def validate_username(username: str) -> None:
    """Raise ValidationError unless ``username`` can be registered."""
    if not username or not username.strip():
        msg = "Please enter a username."
        raise ValidationError(msg)
    if len(username) < MIN_USERNAME_LENGTH:
        msg = f"Usernames must be at least {MIN_USERNAME_LENGTH} characters long."
        raise ValidationError(msg)


def user_handle(username: str) -> bytes:
    """Opaque WebAuthn user id for ``username`` (at most 64 bytes)."""
    raw = username.encode("utf-8")
    if len(raw) <= MAX_USER_HANDLE_BYTES:
        return raw
    return hashlib.sha256(raw).digest()


class CeremonyEngine:
    """Runs one register or authenticate attempt at a time against a platform.

    Attempts are never retried here. Each one gets a fresh challenge, is
    bounded by ``timeout_ms`` and can be aborted with ``cancel()``.
    """

    def __init__(
        self,
        directory: CredentialDirectory,
        platform: PlatformAuthenticator,
        *,
        rp_name: str,
        origin: str,
        rp_id: str | None = None,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        challenge_length: int = codec.DEFAULT_CHALLENGE_LENGTH,
        ledger: ChallengeLedger | None = None,
        verifier: AssertionVerifier | None = None,
    ) -> None:
        self._directory = directory
        self._platform = platform
        self._rp_name = rp_name
        self._rp_id = rp_id or urlparse(origin).hostname or ""
        self._timeout_ms = timeout_ms
        self._ledger = ledger or ChallengeLedger(length=challenge_length)
        self._verifier = verifier or UnverifiedAssertionPolicy()
        self._lock = asyncio.Lock()
        self._inflight: asyncio.Future[Any] | None = None
        self._abort_requested = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        directory: CredentialDirectory,
        platform: PlatformAuthenticator,
        verifier: AssertionVerifier | None = None,
    ) -> CeremonyEngine:
        return cls(
            directory,
            platform,
            rp_name=settings.rp_name,
            origin=settings.origin,
            rp_id=settings.effective_rp_id,
            timeout_ms=settings.ceremony_timeout_ms,
            challenge_length=settings.challenge_length,
            verifier=verifier,
        )

    @property
    def rp_id(self) -> str:
        return self._rp_id

    @property
    def in_flight(self) -> bool:
        return self._lock.locked()

    # ------------------------------------------------------------------
    # Options
    # ------------------------------------------------------------------

    def registration_options(self, username: str) -> PublicKeyCredentialCreationOptions:
        """Creation options for ``username`` with a freshly issued challenge."""
        return generate_registration_options(
            rp_id=self._rp_id,
            rp_name=self._rp_name,
            user_id=user_handle(username),
            user_name=username,
            user_display_name=username,
            challenge=self._ledger.issue(),
            timeout=self._timeout_ms,
            attestation=AttestationConveyancePreference.DIRECT,
            authenticator_selection=AuthenticatorSelectionCriteria(
                authenticator_attachment=AuthenticatorAttachment.PLATFORM,
                resident_key=ResidentKeyRequirement.PREFERRED,
                user_verification=UserVerificationRequirement.REQUIRED,
            ),
            supported_pub_key_algs=SUPPORTED_ALGORITHMS,
        )

    def authentication_options(self, record: CredentialRecord) -> PublicKeyCredentialRequestOptions:
        """Request options allowing exactly ``record``'s credential."""
        return generate_authentication_options(
            rp_id=self._rp_id,
            challenge=self._ledger.issue(),
            timeout=self._timeout_ms,
            allow_credentials=[PublicKeyCredentialDescriptor(id=codec.decode(record.credential_id))],
            user_verification=UserVerificationRequirement.REQUIRED,
        )

    # ------------------------------------------------------------------
    # Ceremonies
    # ------------------------------------------------------------------

    async def register(self, username: str) -> CredentialRecord:
        """Create a passkey for a new user and store its record."""
        validate_username(username)
        async with self._single_flight(CeremonyKind.REGISTRATION, username):
            if await self._directory.exists(username):
                raise DuplicateUserError
            if not self._platform.is_supported():
                msg = "This platform does not support WebAuthn. Use a compatible browser or device."
                raise UnsupportedError(msg)

            options = self.registration_options(username)
            credential = await self._invoke(
                CeremonyKind.REGISTRATION, self._platform.create_credential(options)
            )
            if credential is None:
                msg = "The passkey could not be created. Please try again."
                raise CeremonyFailedError(msg)
            if not credential.public_key:
                msg = "The authenticator did not return a public key."
                raise CeremonyFailedError(msg)

            record = CredentialRecord(
                username=username,
                credential_id=codec.encode(credential.raw_id),
                public_key=codec.encode(credential.public_key),
            )
            record = await self._directory.put(record)
            logger.info("passkey_registered")
            return record

    async def authenticate(self, username: str) -> AssertionResult:
        """Ask the platform for an assertion with ``username``'s stored credential."""
        if not username or not username.strip():
            msg = "Please enter your username."
            raise ValidationError(msg)
        async with self._single_flight(CeremonyKind.AUTHENTICATION, username):
            record = await self._directory.get(username)
            if record is None:
                raise UnknownUserError

            options = self.authentication_options(record)
            assertion = await self._invoke(
                CeremonyKind.AUTHENTICATION, self._platform.get_assertion(options)
            )
            if assertion is None:
                msg = "The passkey could not be verified."
                raise CeremonyFailedError(msg)

            verified = await self._verifier.verify(record, assertion, options.challenge)
            logger.info("passkey_authenticated", verified=verified)
            return AssertionResult(
                username=username,
                credential_id=record.credential_id,
                assertion=assertion,
                verified=verified,
            )

    def cancel(self) -> bool:
        """Abort the pending platform call. Returns False if nothing was pending."""
        if self._inflight is None or self._inflight.done():
            return False
        self._abort_requested = True
        self._inflight.cancel()
        return True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @contextlib.asynccontextmanager
    async def _single_flight(self, kind: CeremonyKind, username: str) -> AsyncIterator[None]:
        if self.in_flight:
            raise CeremonyInProgressError
        async with self._lock:
            with structlog.contextvars.bound_contextvars(ceremony=kind, username=username):
                yield

    async def _invoke(self, kind: CeremonyKind, call: Coroutine[Any, Any, T]) -> T:
        """Await a platform call under the timeout, translating its failures."""
        task = asyncio.ensure_future(call)
        self._inflight = task
        try:
            return await asyncio.wait_for(task, timeout=self._timeout_ms / 1000)
        except TimeoutError as exc:
            logger.warning("ceremony_timed_out", timeout_ms=self._timeout_ms)
            raise CeremonyTimeoutError from exc
        except asyncio.CancelledError:
            if not self._abort_requested:
                raise
            logger.info("ceremony_aborted")
            raise CeremonyCancelledError from None
        except PlatformError as exc:
            error = classify(kind, exc)
            logger.warning("ceremony_failed", platform_error=exc.name, error=type(error).__name__)
            raise error from exc
        except StorageError:
            raise
        except Exception as exc:
            logger.exception("ceremony_crashed")
            raise CeremonyFailedError from exc
        finally:
            self._inflight = None
            self._abort_requested = False
