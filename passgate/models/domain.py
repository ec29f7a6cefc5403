"""Inter-module data contracts (not persisted directly)."""

from pydantic import BaseModel, Field


class PlatformCredential(BaseModel):
    """What a platform authenticator returns from credential creation."""

    raw_id: bytes
    public_key: bytes | None = None  # DER SubjectPublicKeyInfo, may be absent
    public_key_algorithm: int | None = None
    attestation_object: bytes = b""
    client_data_json: bytes = b""
    authenticator_attachment: str | None = None


class PlatformAssertion(BaseModel):
    """What a platform authenticator returns from an assertion request."""

    raw_id: bytes
    authenticator_data: bytes
    client_data_json: bytes
    signature: bytes
    user_handle: bytes | None = None


class AssertionResult(BaseModel):
    """Opaque outcome of a successful authenticate ceremony."""

    username: str
    credential_id: str
    assertion: PlatformAssertion
    verified: bool = False


class SessionPayload(BaseModel):
    """Persisted session layout: ``{"username": ..., "timestamp": ...}``."""

    username: str = Field(min_length=1)
    timestamp: int


class BiometricSupport(BaseModel):
    supported: bool
    reason: str
