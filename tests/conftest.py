"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlmodel import SQLModel

from passgate.auth.ceremonies import CeremonyEngine
from passgate.auth.session import SessionManager
from passgate.models.database import CredentialRecord
from passgate.models.domain import PlatformAssertion, PlatformCredential
from passgate.storage.repositories.credentials import CredentialDirectory
from passgate.storage.session_store import InMemoryKeyValueStore

NOW_MS = 1_700_000_000_000


class FakePlatform:
    """Platform authenticator double that records every invocation."""

    def __init__(
        self,
        *,
        credential: PlatformCredential | None = None,
        assertion: PlatformAssertion | None = None,
        error: Exception | None = None,
        supported: bool = True,
        available: bool | Exception = True,
        delay: float = 0.0,
    ) -> None:
        if credential is None:
            credential = PlatformCredential(raw_id=b"abc123", public_key=b"pk1")
        if assertion is None:
            assertion = PlatformAssertion(
                raw_id=b"abc123",
                authenticator_data=b"auth-data",
                client_data_json=b"{}",
                signature=b"sig",
            )
        self.credential = credential
        self.assertion = assertion
        self.error = error
        self.supported = supported
        self.available = available
        self.delay = delay
        self.calls: list[tuple[str, Any]] = []
        self.return_none = False

    def is_supported(self) -> bool:
        return self.supported

    async def platform_authenticator_available(self) -> bool:
        if isinstance(self.available, Exception):
            raise self.available
        return self.available

    async def create_credential(self, options: Any) -> PlatformCredential | None:
        self.calls.append(("create", options))
        await self._wait_or_fail()
        return None if self.return_none else self.credential

    async def get_assertion(self, options: Any) -> PlatformAssertion | None:
        self.calls.append(("get", options))
        await self._wait_or_fail()
        return None if self.return_none else self.assertion

    async def _wait_or_fail(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error


@pytest.fixture()
async def async_engine():
    """In-memory SQLite engine with the credential table created."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def directory(async_engine) -> CredentialDirectory:
    return CredentialDirectory(async_engine)


@pytest.fixture()
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture()
def ceremonies(directory: CredentialDirectory, platform: FakePlatform) -> CeremonyEngine:
    return CeremonyEngine(
        directory,
        platform,
        rp_name="PasskeyDemo",
        origin="http://localhost:5173",
    )


@pytest.fixture()
def session_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture()
def sessions(session_store: InMemoryKeyValueStore) -> SessionManager:
    return SessionManager(session_store, clock=lambda: NOW_MS)


@pytest.fixture()
def make_record():
    def _make(username: str = "alice") -> CredentialRecord:
        return CredentialRecord(
            username=username,
            credential_id="Y3JlZC0x",  # b"cred-1"
            public_key="a2V5LTE",  # b"key-1"
            created_at=NOW_MS,
        )

    return _make
