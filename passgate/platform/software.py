"""In-process platform authenticator backed by ``cryptography`` EC keys.

Stands in for Touch ID / Windows Hello when passgate runs in a terminal.
Private keys never leave this object. Without a ``key_file`` they are lost
when the process exits; with one they are kept as PEM in a JSON keyring that
only the owner can read.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import pathlib  # noqa: TC003 - used at runtime for Path operations
import secrets
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from webauthn.helpers.cose import COSEAlgorithmIdentifier

from passgate.auth import codec
from passgate.auth.platform import PlatformError
from passgate.exceptions import MalformedInputError, StorageError
from passgate.models.domain import PlatformAssertion, PlatformCredential
from passgate.types import PlatformErrorName

if TYPE_CHECKING:
    from webauthn.helpers.structs import (
        PublicKeyCredentialCreationOptions,
        PublicKeyCredentialRequestOptions,
    )

logger = structlog.get_logger(__name__)

UserVerifier = Callable[[str], Awaitable[bool]]

FLAG_USER_PRESENT = 0x01
FLAG_USER_VERIFIED = 0x04


async def _always_approve(prompt: str) -> bool:
    return True


@dataclass
class _StoredKey:
    rp_id: str
    user_handle: bytes
    private_key: ec.EllipticCurvePrivateKey
    sign_count: int = 0

    def to_entry(self) -> dict[str, str | int]:
        pem = self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return {
            "rp_id": self.rp_id,
            "user_handle": codec.encode(self.user_handle),
            "sign_count": self.sign_count,
            "private_key": pem.decode("ascii"),
        }

    @classmethod
    def from_entry(cls, entry: dict[str, str | int]) -> _StoredKey:
        private_key = serialization.load_pem_private_key(
            str(entry["private_key"]).encode("ascii"), password=None
        )
        if not isinstance(private_key, ec.EllipticCurvePrivateKey):
            msg = "keyring entry is not an EC private key"
            raise TypeError(msg)
        return cls(
            rp_id=str(entry["rp_id"]),
            user_handle=codec.decode(str(entry["user_handle"])),
            private_key=private_key,
            sign_count=int(entry["sign_count"]),
        )


class SoftwareAuthenticator:
    """ES256-only authenticator that asks ``verify_user`` before every use.

    ``verify_user`` plays the part of the biometric prompt: returning False
    is reported as ``NotAllowedError``, exactly like a user dismissing the
    browser dialog.
    """

    def __init__(
        self,
        origin: str,
        verify_user: UserVerifier | None = None,
        *,
        available: bool = True,
        key_file: pathlib.Path | None = None,
    ) -> None:
        self._origin = origin
        self._verify_user = verify_user or _always_approve
        self._available = available
        self._key_file = key_file
        self._keys: dict[bytes, _StoredKey] = {}
        if key_file is not None and key_file.exists():
            self._keys = _load_keyring(key_file)

    def is_supported(self) -> bool:
        return True

    async def platform_authenticator_available(self) -> bool:
        return self._available

    async def create_credential(
        self, options: PublicKeyCredentialCreationOptions
    ) -> PlatformCredential | None:
        if not any(
            p.alg == COSEAlgorithmIdentifier.ECDSA_SHA_256 for p in options.pub_key_cred_params
        ):
            raise PlatformError(PlatformErrorName.NOT_SUPPORTED, "Only ES256 is supported")

        excluded = {d.id for d in options.exclude_credentials or []}
        if excluded & self._keys.keys():
            raise PlatformError(PlatformErrorName.INVALID_STATE, "Credential already registered")

        rp_id = options.rp.id or ""
        await self._require_user(f"Create a passkey for '{options.user.name}' on {rp_id}?")

        private_key = ec.generate_private_key(ec.SECP256R1())
        raw_id = secrets.token_bytes(16)
        self._keys[raw_id] = _StoredKey(
            rp_id=rp_id, user_handle=options.user.id, private_key=private_key
        )
        await self._persist()
        public_key = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        logger.debug("software_credential_created", rp_id=rp_id)
        return PlatformCredential(
            raw_id=raw_id,
            public_key=public_key,
            public_key_algorithm=COSEAlgorithmIdentifier.ECDSA_SHA_256,
            client_data_json=self._client_data("webauthn.create", options.challenge),
            authenticator_attachment="platform",
        )

    async def get_assertion(
        self, options: PublicKeyCredentialRequestOptions
    ) -> PlatformAssertion | None:
        rp_id = options.rp_id or ""
        allowed = [d.id for d in options.allow_credentials or []] or list(self._keys)
        held = [cid for cid in allowed if cid in self._keys and self._keys[cid].rp_id == rp_id]
        if not held:
            raise PlatformError(
                PlatformErrorName.INVALID_STATE, "No matching passkey on this device"
            )

        await self._require_user(f"Sign in to {rp_id} with your passkey?")

        raw_id = held[0]
        entry = self._keys[raw_id]
        entry.sign_count += 1
        await self._persist()
        authenticator_data = (
            hashlib.sha256(rp_id.encode("utf-8")).digest()
            + bytes([FLAG_USER_PRESENT | FLAG_USER_VERIFIED])
            + entry.sign_count.to_bytes(4, "big")
        )
        client_data_json = self._client_data("webauthn.get", options.challenge)
        signature = entry.private_key.sign(
            authenticator_data + hashlib.sha256(client_data_json).digest(),
            ec.ECDSA(hashes.SHA256()),
        )
        return PlatformAssertion(
            raw_id=raw_id,
            authenticator_data=authenticator_data,
            client_data_json=client_data_json,
            signature=signature,
            user_handle=entry.user_handle,
        )

    async def forget(self, raw_id: bytes) -> bool:
        """Drop a credential, as if the user removed it from the device."""
        if self._keys.pop(raw_id, None) is None:
            return False
        await self._persist()
        logger.info("software_credential_forgotten")
        return True

    async def _require_user(self, prompt: str) -> None:
        if not await self._verify_user(prompt):
            raise PlatformError(PlatformErrorName.NOT_ALLOWED, "The user declined the request")

    def _client_data(self, ceremony_type: str, challenge: bytes) -> bytes:
        return json.dumps(
            {
                "type": ceremony_type,
                "challenge": codec.encode(challenge),
                "origin": self._origin,
                "crossOrigin": False,
            },
            separators=(",", ":"),
        ).encode("utf-8")

    # ------------------------------------------------------------------
    # Keyring file
    # ------------------------------------------------------------------

    async def _persist(self) -> None:
        if self._key_file is None:
            return
        payload = json.dumps(
            {codec.encode(cid): key.to_entry() for cid, key in self._keys.items()}, indent=2
        )
        try:
            await asyncio.to_thread(_write_private, self._key_file, payload)
        except OSError as exc:
            msg = f"Cannot write authenticator keys to {self._key_file}"
            raise StorageError(msg) from exc


def _write_private(path: pathlib.Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f"{path.name}.tmp")
    tmp.write_text(text, encoding="utf-8")
    tmp.chmod(0o600)
    tmp.replace(path)


def _load_keyring(path: pathlib.Path) -> dict[bytes, _StoredKey]:
    try:
        entries = json.loads(path.read_text(encoding="utf-8"))
        keys = {codec.decode(cid): _StoredKey.from_entry(e) for cid, e in entries.items()}
    except (OSError, ValueError, LookupError, TypeError, AttributeError, MalformedInputError) as e:
        msg = f"Cannot read authenticator keys from {path}"
        raise StorageError(msg) from e
    logger.debug("software_keys_loaded", count=len(keys))
    return keys
