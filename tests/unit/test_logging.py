"""Unit tests for logging configuration and ceremony log context."""

from __future__ import annotations

import logging
from typing import Any

import pytest
import structlog

from conftest import FakePlatform
from passgate.auth.ceremonies import CeremonyEngine
from passgate.config.logging import redact_key_material, setup_logging
from passgate.models.domain import PlatformCredential
from passgate.storage.repositories.credentials import CredentialDirectory
from passgate.types import CeremonyKind


class ContextRecordingPlatform(FakePlatform):
    def __init__(self) -> None:
        super().__init__()
        self.context: dict[str, Any] = {}

    async def create_credential(self, options: Any) -> PlatformCredential | None:
        self.context = structlog.contextvars.get_contextvars()
        return await super().create_credential(options)


@pytest.mark.unit
class TestRedaction:
    def test_secrets_are_replaced(self) -> None:
        event = {"event": "x", "username": "carol", "private_key": "PEM", "signature": b"sig"}
        redacted = redact_key_material(None, "info", dict(event))
        assert redacted == {
            "event": "x",
            "username": "carol",
            "private_key": "[redacted]",
            "signature": "[redacted]",
        }

    def test_plain_events_untouched(self) -> None:
        event = {"event": "session_established", "username": "carol"}
        assert redact_key_material(None, "info", dict(event)) == event


@pytest.mark.unit
class TestSetupLogging:
    def test_sql_loggers_stay_quiet(self) -> None:
        root = logging.getLogger()
        saved_level, saved_handlers = root.level, root.handlers[:]
        setup_logging(log_level="DEBUG")
        try:
            assert root.level == logging.DEBUG
            assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
        finally:
            structlog.reset_defaults()
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)


@pytest.mark.unit
class TestCeremonyContext:
    async def test_ceremony_and_username_are_bound(self, directory: CredentialDirectory) -> None:
        platform = ContextRecordingPlatform()
        engine = CeremonyEngine(
            directory, platform, rp_name="PasskeyDemo", origin="http://localhost"
        )
        await engine.register("carol")

        assert platform.context == {"ceremony": CeremonyKind.REGISTRATION, "username": "carol"}
        assert structlog.contextvars.get_contextvars() == {}
