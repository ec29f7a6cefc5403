"""Passkey service: the surface a UI or CLI drives."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from passgate.auth import codec
from passgate.auth.gate import AccessGate
from passgate.auth.platform import CredentialKeyring
from passgate.models.domain import BiometricSupport

if TYPE_CHECKING:
    from passgate.auth.ceremonies import CeremonyEngine
    from passgate.auth.gate import GateDecision
    from passgate.auth.platform import PlatformAuthenticator
    from passgate.auth.session import Session, SessionManager
    from passgate.storage.repositories.credentials import CredentialDirectory
    from passgate.types import SessionStatus

logger = structlog.get_logger(__name__)


class PasskeyService:
    """Ties ceremonies to the session of one client context.

    A successful ceremony, registration included, signs the user in. A failed
    one leaves the session exactly as it was.
    """

    def __init__(
        self,
        engine: CeremonyEngine,
        sessions: SessionManager,
        directory: CredentialDirectory,
        platform: PlatformAuthenticator,
        gate: AccessGate | None = None,
    ) -> None:
        self._engine = engine
        self._sessions = sessions
        self._directory = directory
        self._platform = platform
        self._gate = gate or AccessGate()

    @property
    def gate(self) -> AccessGate:
        return self._gate

    @property
    def status(self) -> SessionStatus:
        return self._sessions.effective_status()

    async def start(self) -> SessionStatus:
        """Load any session left in the store by this client context."""
        return await self._sessions.restore()

    # ------------------------------------------------------------------
    # Ceremonies
    # ------------------------------------------------------------------

    async def register(self, username: str) -> Session:
        record = await self._engine.register(username)
        return await self._sessions.establish(record.username)

    async def authenticate(self, username: str) -> Session:
        result = await self._engine.authenticate(username)
        return await self._sessions.establish(result.username)

    def cancel(self) -> bool:
        """Abort the ceremony in flight, if any."""
        return self._engine.cancel()

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    async def current_session(self) -> Session | None:
        return await self._sessions.validate()

    async def logout(self) -> None:
        await self._sessions.terminate()

    def is_authenticated_sync(self) -> bool:
        return self._sessions.is_authenticated

    def guard(self, path: str) -> GateDecision:
        """Decide whether ``path`` may be shown right now."""
        return self._gate.evaluate(self._sessions.effective_status(), path)

    async def check_access(self, path: str) -> GateDecision:
        """Like ``guard`` but also clears a session that has expired."""
        await self._sessions.validate()
        return self.guard(path)

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    async def check_biometric_support(self) -> BiometricSupport:
        if not self._platform.is_supported():
            return BiometricSupport(supported=False, reason="WebAuthn not supported")
        try:
            available = await self._platform.platform_authenticator_available()
        except Exception as exc:
            logger.warning("biometric_probe_failed", error=str(exc))
            return BiometricSupport(supported=False, reason="Error checking biometric support")
        return BiometricSupport(
            supported=available,
            reason="Biometrics available" if available else "No biometrics available",
        )

    async def registered_users(self) -> list[str]:
        return await self._directory.list()

    async def remove_user(self, username: str) -> bool:
        """Administrative delete of ``username``'s credential record.

        When the platform keeps its own keyring the matching private key goes
        too, so a later registration under the same name starts clean.
        """
        record = await self._directory.get(username)
        if record is None or not await self._directory.delete(username):
            return False
        if isinstance(self._platform, CredentialKeyring):
            await self._platform.forget(codec.decode(record.credential_id))
        return True
