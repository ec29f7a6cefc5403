"""Application settings via Pydantic BaseSettings."""

from __future__ import annotations

from functools import lru_cache
from urllib.parse import urlparse

from pydantic_settings import BaseSettings

from passgate.exceptions import ConfigError

MIN_CHALLENGE_LENGTH = 32


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Durable credential store
    database_url: str = "sqlite+aiosqlite:///./passgate.db"

    # App
    debug: bool = False
    log_level: str = "INFO"
    json_logs: bool = False

    # Relying party
    rp_name: str = "PasskeyDemo"
    origin: str = "http://localhost"
    rp_id: str | None = None  # derived from origin when unset

    # Software authenticator keyring; unset keeps keys in memory only
    authenticator_key_file: str | None = "./passgate-keys.json"

    # Ceremonies
    ceremony_timeout_ms: int = 60_000
    challenge_length: int = MIN_CHALLENGE_LENGTH

    # Sessions
    session_max_age_seconds: int = 86_400
    session_key: str = "passkey_auth"

    # Access gate
    auth_path: str = "/auth"
    default_destination: str = "/protected"

    @property
    def effective_rp_id(self) -> str:
        """Relying-party id: explicit ``rp_id`` or the origin's hostname."""
        if self.rp_id:
            return self.rp_id
        return urlparse(self.origin).hostname or ""


def validate_settings(settings: Settings) -> Settings:
    """Reject settings the ceremony and session layers cannot work with."""
    if settings.challenge_length < MIN_CHALLENGE_LENGTH:
        msg = f"CHALLENGE_LENGTH must be at least {MIN_CHALLENGE_LENGTH} bytes"
        raise ConfigError(msg)
    if settings.ceremony_timeout_ms <= 0:
        msg = "CEREMONY_TIMEOUT_MS must be positive"
        raise ConfigError(msg)
    if settings.session_max_age_seconds <= 0:
        msg = "SESSION_MAX_AGE_SECONDS must be positive"
        raise ConfigError(msg)
    if not settings.effective_rp_id:
        msg = f"Cannot derive a relying-party id from ORIGIN={settings.origin!r}"
        raise ConfigError(msg)
    return settings


@lru_cache
def get_settings() -> Settings:
    """Return cached, validated settings instance."""
    return validate_settings(Settings())
