"""SQLModel database table models."""

from __future__ import annotations

import time
from typing import Any

from sqlmodel import Field, SQLModel


def now_ms() -> int:
    """Return the current time in milliseconds since the epoch."""
    return int(time.time() * 1000)


class CredentialRecord(SQLModel, table=True):
    """One registered authenticator binding. Never updated in place."""

    __tablename__ = "credentials"

    username: str = Field(primary_key=True)
    credential_id: str  # url-safe base64
    public_key: str  # url-safe base64, inspection only
    created_at: int = Field(default_factory=now_ms)

    def as_layout(self) -> dict[str, Any]:
        """Return the record in the ``username -> {...}`` export layout."""
        return {
            "credentialId": self.credential_id,
            "publicKey": self.public_key,
            "createdAt": self.created_at,
        }
