"""Single-use bookkeeping for ceremony challenges."""

from __future__ import annotations

import hashlib
import time

import structlog

from passgate.auth import codec

logger = structlog.get_logger(__name__)


class ChallengeLedger:
    """Hands out fresh challenges and remembers them for a TTL.

    Only SHA-256 fingerprints are kept, never the challenge bytes. A challenge
    whose fingerprint is still in the ledger is never handed out again.
    Expired entries are lazily cleaned on ``issue``.
    """

    def __init__(self, length: int = codec.DEFAULT_CHALLENGE_LENGTH, ttl_seconds: int = 600) -> None:
        self._length = length
        self._ttl = ttl_seconds
        self._issued: dict[str, float] = {}  # fingerprint -> expires_at

    def issue(self) -> bytes:
        """Return a challenge that has not been issued within the TTL."""
        self._cleanup()
        while True:
            challenge = codec.random_challenge(self._length)
            fingerprint = _fingerprint(challenge)
            if fingerprint not in self._issued:
                break
            logger.warning("challenge_collision_regenerated")
        self._issued[fingerprint] = time.time() + self._ttl
        return challenge

    def __len__(self) -> int:
        return len(self._issued)

    def _cleanup(self) -> None:
        """Remove expired entries."""
        now = time.time()
        expired = [k for k, exp in self._issued.items() if now > exp]
        for k in expired:
            del self._issued[k]


def _fingerprint(challenge: bytes) -> str:
    return hashlib.sha256(challenge).hexdigest()
