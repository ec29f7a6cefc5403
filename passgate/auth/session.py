"""Session state machine backed by an ephemeral key-value store."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

import pydantic
import structlog

from passgate.models.database import now_ms
from passgate.models.domain import SessionPayload
from passgate.types import SessionStatus

if TYPE_CHECKING:
    from passgate.storage.session_store import KeyValueStore

logger = structlog.get_logger(__name__)

DEFAULT_SESSION_KEY = "passkey_auth"
DEFAULT_MAX_AGE_MS = 24 * 60 * 60 * 1000


@dataclass(frozen=True)
class Session:
    username: str
    established_at: int  # ms since epoch

    def expired(self, now: int, max_age_ms: int = DEFAULT_MAX_AGE_MS) -> bool:
        return now - self.established_at > max_age_ms


class SessionManager:
    """Owns the single active session of one client context.

    ``status`` starts as ``UNKNOWN``, is ``CHECKING`` while ``restore`` reads
    the store, and is ``AUTHENTICATED`` or ``ANONYMOUS`` once any operation
    completes.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        key: str = DEFAULT_SESSION_KEY,
        max_age_ms: int = DEFAULT_MAX_AGE_MS,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._store = store
        self._key = key
        self._max_age_ms = max_age_ms
        self._clock = clock
        self._status = SessionStatus.UNKNOWN
        self._session: Session | None = None

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def username(self) -> str | None:
        return self._session.username if self._session else None

    @property
    def is_authenticated(self) -> bool:
        return self.effective_status() == SessionStatus.AUTHENTICATED

    def effective_status(self) -> SessionStatus:
        """Status as of now. A session past its max age reads as ``ANONYMOUS``.

        The stored copy is only cleared by the next ``validate()``.
        """
        if self._session is not None and self._session.expired(self._clock(), self._max_age_ms):
            return SessionStatus.ANONYMOUS
        return self._status

    def current(self) -> Session | None:
        return self._session

    async def restore(self) -> SessionStatus:
        """Load the stored session. Never raises on bad data."""
        self._status = SessionStatus.CHECKING
        raw = await self._store.get(self._key)
        if raw is None:
            self._set_anonymous()
            return self._status

        try:
            payload = SessionPayload.model_validate_json(raw)
        except pydantic.ValidationError:
            logger.warning("session_data_malformed")
            await self.terminate()
            return self._status

        session = Session(username=payload.username, established_at=payload.timestamp)
        if session.expired(self._clock(), self._max_age_ms):
            logger.info("session_expired", username=session.username)
            await self.terminate()
            return self._status

        self._session = session
        self._status = SessionStatus.AUTHENTICATED
        logger.debug("session_restored", username=session.username)
        return self._status

    async def validate(self) -> Session | None:
        """Return the current session, terminating it first if it has expired."""
        if self._session is not None and self._session.expired(self._clock(), self._max_age_ms):
            logger.info("session_expired", username=self._session.username)
            await self.terminate()
        return self._session

    async def establish(self, username: str) -> Session:
        """Start a session for ``username``, replacing any previous one."""
        session = Session(username=username, established_at=self._clock())
        payload = SessionPayload(username=username, timestamp=session.established_at)
        await self._store.set(self._key, payload.model_dump_json())
        self._session = session
        self._status = SessionStatus.AUTHENTICATED
        logger.info("session_established", username=username)
        return session

    async def terminate(self) -> None:
        """Clear the stored session. Safe to call with no session."""
        previous = self.username
        await self._store.delete(self._key)
        self._set_anonymous()
        if previous:
            logger.info("session_terminated", username=previous)

    def _set_anonymous(self) -> None:
        self._session = None
        self._status = SessionStatus.ANONYMOUS
