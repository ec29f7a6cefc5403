"""Access gate: turns session status into an admit/redirect decision."""

from __future__ import annotations

from dataclasses import dataclass

from passgate.types import GateVerdict, SessionStatus

DEFAULT_AUTH_PATH = "/auth"
DEFAULT_DESTINATION = "/protected"


@dataclass(frozen=True)
class GateDecision:
    verdict: GateVerdict
    redirect_to: str | None = None
    return_to: str | None = None  # where to send the caller after authenticating

    @property
    def admitted(self) -> bool:
        return self.verdict == GateVerdict.ADMIT

    @property
    def pending(self) -> bool:
        return self.verdict == GateVerdict.PENDING


class AccessGate:
    """Stateless guard for protected paths.

    While the session is still ``UNKNOWN`` or ``CHECKING`` the gate answers
    ``PENDING`` and the caller should show a loading state.
    """

    def __init__(
        self,
        auth_path: str = DEFAULT_AUTH_PATH,
        default_destination: str = DEFAULT_DESTINATION,
    ) -> None:
        self._auth_path = auth_path
        self._default_destination = default_destination

    def evaluate(self, status: SessionStatus, requested_path: str) -> GateDecision:
        if status == SessionStatus.AUTHENTICATED:
            return GateDecision(GateVerdict.ADMIT)
        if status == SessionStatus.ANONYMOUS:
            return GateDecision(
                GateVerdict.REDIRECT,
                redirect_to=self._auth_path,
                return_to=requested_path,
            )
        return GateDecision(GateVerdict.PENDING)

    def destination_after_auth(self, return_to: str | None) -> str:
        """Where to go once authenticated; only local paths are honoured."""
        if return_to and return_to.startswith("/") and not return_to.startswith("//"):
            return return_to
        return self._default_destination
