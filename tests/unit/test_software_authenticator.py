"""Unit tests for the in-process SoftwareAuthenticator."""

from __future__ import annotations

import hashlib
import json

import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from webauthn.helpers.cose import COSEAlgorithmIdentifier

from passgate.auth import codec
from passgate.auth.ceremonies import CeremonyEngine
from passgate.auth.platform import CredentialKeyring, PlatformAuthenticator, PlatformError
from passgate.exceptions import CeremonyCancelledError, CredentialStateError, StorageError
from passgate.platform.software import SoftwareAuthenticator
from passgate.storage.repositories.credentials import CredentialDirectory

ORIGIN = "http://localhost:5173"


def _engine(directory: CredentialDirectory, platform: SoftwareAuthenticator) -> CeremonyEngine:
    return CeremonyEngine(directory, platform, rp_name="PasskeyDemo", origin=ORIGIN)


def _answers(*replies: bool):
    queue = list(replies)
    prompts: list[str] = []

    async def verify_user(prompt: str) -> bool:
        prompts.append(prompt)
        return queue.pop(0)

    return verify_user, prompts


@pytest.mark.unit
class TestSoftwareAuthenticator:
    def test_satisfies_platform_protocol(self) -> None:
        assert isinstance(SoftwareAuthenticator(ORIGIN), PlatformAuthenticator)
        assert isinstance(SoftwareAuthenticator(ORIGIN), CredentialKeyring)

    async def test_capability_probe(self) -> None:
        assert SoftwareAuthenticator(ORIGIN).is_supported() is True
        assert await SoftwareAuthenticator(ORIGIN).platform_authenticator_available() is True
        unavailable = SoftwareAuthenticator(ORIGIN, available=False)
        assert await unavailable.platform_authenticator_available() is False

    async def test_create_returns_der_public_key(self, directory: CredentialDirectory) -> None:
        platform = SoftwareAuthenticator(ORIGIN)
        options = _engine(directory, platform).registration_options("carol")
        credential = await platform.create_credential(options)

        assert credential is not None
        assert len(credential.raw_id) == 16
        assert credential.public_key_algorithm == COSEAlgorithmIdentifier.ECDSA_SHA_256
        key = serialization.load_der_public_key(credential.public_key)
        assert isinstance(key, ec.EllipticCurvePublicKey)
        client_data = json.loads(credential.client_data_json)
        assert client_data["type"] == "webauthn.create"
        assert client_data["origin"] == ORIGIN
        assert codec.decode(client_data["challenge"]) == options.challenge

    async def test_rejects_rsa_only_requests(self) -> None:
        from webauthn import generate_registration_options

        options = generate_registration_options(
            rp_id="localhost",
            rp_name="PasskeyDemo",
            user_name="carol",
            supported_pub_key_algs=[COSEAlgorithmIdentifier.RSASSA_PKCS1_v1_5_SHA_256],
        )
        with pytest.raises(PlatformError) as info:
            await SoftwareAuthenticator(ORIGIN).create_credential(options)
        assert info.value.name == "NotSupportedError"

    async def test_register_and_authenticate_with_valid_signature(
        self, directory: CredentialDirectory
    ) -> None:
        platform = SoftwareAuthenticator(ORIGIN)
        engine = _engine(directory, platform)
        record = await engine.register("carol")
        result = await engine.authenticate("carol")

        assertion = result.assertion
        assert assertion.raw_id == codec.decode(record.credential_id)
        assert assertion.user_handle == b"carol"
        assert assertion.authenticator_data[:32] == hashlib.sha256(b"localhost").digest()
        assert assertion.authenticator_data[32] & 0x05 == 0x05
        assert int.from_bytes(assertion.authenticator_data[33:37], "big") == 1

        public_key = serialization.load_der_public_key(codec.decode(record.public_key))
        assert isinstance(public_key, ec.EllipticCurvePublicKey)
        signed = assertion.authenticator_data + hashlib.sha256(assertion.client_data_json).digest()
        public_key.verify(assertion.signature, signed, ec.ECDSA(hashes.SHA256()))

    async def test_declined_prompt_is_a_cancellation(self, directory: CredentialDirectory) -> None:
        verify_user, prompts = _answers(False)
        engine = _engine(directory, SoftwareAuthenticator(ORIGIN, verify_user))
        with pytest.raises(CeremonyCancelledError):
            await engine.register("carol")
        assert prompts == ["Create a passkey for 'carol' on localhost?"]
        assert await directory.exists("carol") is False

    async def test_forgotten_credential_is_invalid_state(
        self, directory: CredentialDirectory
    ) -> None:
        platform = SoftwareAuthenticator(ORIGIN)
        engine = _engine(directory, platform)
        record = await engine.register("carol")
        assert await platform.forget(codec.decode(record.credential_id)) is True
        assert await platform.forget(codec.decode(record.credential_id)) is False
        with pytest.raises(CredentialStateError):
            await engine.authenticate("carol")

    async def test_wrong_relying_party_is_refused(self, directory: CredentialDirectory) -> None:
        platform = SoftwareAuthenticator(ORIGIN)
        await _engine(directory, platform).register("carol")
        other_site = CeremonyEngine(
            directory, platform, rp_name="Other", origin="https://other.example"
        )
        with pytest.raises(CredentialStateError):
            await other_site.authenticate("carol")

    async def test_declined_sign_in(self, directory: CredentialDirectory) -> None:
        verify_user, _ = _answers(True, False)
        engine = _engine(directory, SoftwareAuthenticator(ORIGIN, verify_user))
        await engine.register("carol")
        with pytest.raises(CeremonyCancelledError):
            await engine.authenticate("carol")


@pytest.mark.unit
class TestKeyringFile:
    async def test_keys_survive_a_new_instance(
        self, directory: CredentialDirectory, tmp_path
    ) -> None:
        key_file = tmp_path / "keys.json"
        platform = SoftwareAuthenticator(ORIGIN, key_file=key_file)
        record = await _engine(directory, platform).register("carol")
        assert key_file.stat().st_mode & 0o777 == 0o600

        reopened = SoftwareAuthenticator(ORIGIN, key_file=key_file)
        result = await _engine(directory, reopened).authenticate("carol")

        assertion = result.assertion
        public_key = serialization.load_der_public_key(codec.decode(record.public_key))
        assert isinstance(public_key, ec.EllipticCurvePublicKey)
        signed = assertion.authenticator_data + hashlib.sha256(assertion.client_data_json).digest()
        public_key.verify(assertion.signature, signed, ec.ECDSA(hashes.SHA256()))
        assert assertion.user_handle == b"carol"

    async def test_sign_count_is_persisted(self, directory: CredentialDirectory, tmp_path) -> None:
        key_file = tmp_path / "keys.json"
        await _engine(directory, SoftwareAuthenticator(ORIGIN, key_file=key_file)).register("carol")
        await _engine(directory, SoftwareAuthenticator(ORIGIN, key_file=key_file)).authenticate(
            "carol"
        )

        result = await _engine(
            directory, SoftwareAuthenticator(ORIGIN, key_file=key_file)
        ).authenticate("carol")
        assert int.from_bytes(result.assertion.authenticator_data[33:37], "big") == 2

    async def test_forget_is_persisted(self, directory: CredentialDirectory, tmp_path) -> None:
        key_file = tmp_path / "keys.json"
        platform = SoftwareAuthenticator(ORIGIN, key_file=key_file)
        record = await _engine(directory, platform).register("carol")
        await platform.forget(codec.decode(record.credential_id))

        reopened = SoftwareAuthenticator(ORIGIN, key_file=key_file)
        with pytest.raises(CredentialStateError):
            await _engine(directory, reopened).authenticate("carol")
        assert json.loads(key_file.read_text()) == {}

    @pytest.mark.parametrize(
        "content", ["not json", "[]", '{"@@": {}}', '{"YWJj": {"rp_id": "x"}}']
    )
    def test_unreadable_keyring(self, tmp_path, content: str) -> None:
        key_file = tmp_path / "keys.json"
        key_file.write_text(content)
        with pytest.raises(StorageError):
            SoftwareAuthenticator(ORIGIN, key_file=key_file)

    def test_missing_file_starts_empty(self, tmp_path) -> None:
        key_file = tmp_path / "nested" / "keys.json"
        SoftwareAuthenticator(ORIGIN, key_file=key_file)
        assert not key_file.exists()
