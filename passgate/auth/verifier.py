"""Seam where assertion signatures would be verified.

passgate runs entirely on the client and does not check assertion signatures
against the stored public key. A deployment that needs real authentication
must plug a server-side verifier in here; until then a successful ceremony
plus a directory hit is all that backs a session.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

import structlog

if TYPE_CHECKING:
    from passgate.models.database import CredentialRecord
    from passgate.models.domain import PlatformAssertion

logger = structlog.get_logger(__name__)


class AssertionVerifier(Protocol):
    async def verify(
        self, record: CredentialRecord, assertion: PlatformAssertion, challenge: bytes
    ) -> bool:
        """Return True when ``assertion`` is proven to come from ``record``'s key.

        Reject an assertion by raising a ``CeremonyError``.
        """
        ...


class UnverifiedAssertionPolicy:
    """Accepts every assertion without checking it and says so in the logs."""

    async def verify(
        self, record: CredentialRecord, assertion: PlatformAssertion, challenge: bytes
    ) -> bool:
        logger.warning(
            "assertion_not_verified",
            username=record.username,
            detail="signature check is delegated to an external verifier",
        )
        return False
