"""Binary/text conversions for credential ids and challenges."""

from __future__ import annotations

import binascii
import re
import secrets

from webauthn.helpers import base64url_to_bytes, bytes_to_base64url

from passgate.exceptions import MalformedInputError

DEFAULT_CHALLENGE_LENGTH = 32

_URLSAFE_ALPHABET = re.compile(r"[A-Za-z0-9_-]*")


def encode(data: bytes) -> str:
    """Encode bytes as unpadded url-safe base64."""
    return bytes_to_base64url(data)


def decode(text: str) -> bytes:
    """Decode url-safe base64 text, padded or not.

    The stdlib decoder silently drops unknown characters, so the alphabet is
    checked first.
    """
    stripped = text.rstrip("=")
    if not _URLSAFE_ALPHABET.fullmatch(stripped):
        msg = f"Not url-safe base64: {text!r}"
        raise MalformedInputError(msg)
    try:
        return base64url_to_bytes(stripped)
    except (binascii.Error, ValueError) as exc:
        msg = f"Not url-safe base64: {text!r}"
        raise MalformedInputError(msg) from exc


def random_challenge(length: int = DEFAULT_CHALLENGE_LENGTH) -> bytes:
    """Return ``length`` bytes from the OS CSPRNG."""
    if length < DEFAULT_CHALLENGE_LENGTH:
        msg = f"Challenges must be at least {DEFAULT_CHALLENGE_LENGTH} bytes"
        raise ValueError(msg)
    return secrets.token_bytes(length)
