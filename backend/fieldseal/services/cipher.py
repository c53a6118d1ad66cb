"""Field encryption primitives for queryable encryption at rest.

Every encrypted column stores an envelope: base64(IV || AES-256-CBC
ciphertext). Deterministic mode derives the IV from (key, plaintext) so
equal plaintexts produce equal envelopes and can back equality lookups and
unique indexes. Non-deterministic mode draws a random IV per call.

All functions are pure. The key is the only shared input and it is
immutable, so concurrent use needs no locking.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from enum import Enum

from fieldseal.utils.crypto import (
    BLOCK_SIZE,
    IV_SIZE,
    KEY_SIZE,
    aes_cbc_decrypt,
    aes_cbc_encrypt,
    derive_iv,
    generate_key,
    random_iv,
)

MIN_ENVELOPE_BYTES = IV_SIZE + BLOCK_SIZE

_PLACEHOLDER_MARKERS = ("CHANGE_ME", "CHANGEME", "DEV_ONLY", "DEVONLY")


class CipherMode(str, Enum):
    DETERMINISTIC = "deterministic"
    NON_DETERMINISTIC = "non_deterministic"


@dataclass(frozen=True, slots=True)
class EncryptionKey:
    """Immutable 256-bit field encryption key.

    The key material is excluded from repr so it never ends up in logs or
    tracebacks.
    """

    material: bytes = field(repr=False)

    def __post_init__(self) -> None:
        if not isinstance(self.material, bytes):
            raise TypeError("Encryption key material must be bytes")
        if len(self.material) != KEY_SIZE:
            raise ValueError(
                f"Encryption key must be exactly {KEY_SIZE} bytes (256 bits), "
                f"got {len(self.material)}"
            )

    @classmethod
    def from_base64(cls, value: str) -> EncryptionKey:
        """Parse a base64-encoded key from configuration.

        Raises ValueError for empty, placeholder, non-base64 or wrong-length
        values.
        """
        value = (value or "").strip()
        if not value:
            raise ValueError(
                "ENCRYPTION_KEY is not set. Generate one with "
                "scripts/generate-encryption-key.py."
            )
        upper = value.upper()
        if any(marker in upper for marker in _PLACEHOLDER_MARKERS):
            raise ValueError(
                "ENCRYPTION_KEY is a placeholder value. Generate a real key with "
                "scripts/generate-encryption-key.py."
            )
        try:
            material = base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError):
            raise ValueError("ENCRYPTION_KEY is not valid base64") from None
        return cls(material)

    def to_base64(self) -> str:
        return base64.b64encode(self.material).decode("ascii")


def generate_key_b64() -> str:
    """Return a fresh random key, base64-encoded for configuration."""
    return base64.b64encode(generate_key()).decode("ascii")


def _seal(plaintext: str, key: EncryptionKey, iv: bytes) -> str:
    ciphertext = aes_cbc_encrypt(key.material, iv, plaintext.encode("utf-8"))
    return base64.b64encode(iv + ciphertext).decode("ascii")


def encrypt_deterministic(plaintext: str, key: EncryptionKey) -> str:
    """Encrypt with an IV derived from HMAC-SHA256(key, plaintext).

    The same plaintext always yields the same envelope under one key.
    """
    iv = derive_iv(key.material, plaintext.encode("utf-8"))
    return _seal(plaintext, key, iv)


def encrypt_non_deterministic(plaintext: str, key: EncryptionKey) -> str:
    """Encrypt with a fresh random IV; repeated values cannot be correlated."""
    return _seal(plaintext, key, random_iv())


def encrypt(plaintext: str, key: EncryptionKey, mode: CipherMode) -> str:
    if mode is CipherMode.DETERMINISTIC:
        return encrypt_deterministic(plaintext, key)
    return encrypt_non_deterministic(plaintext, key)


def _is_envelope_length(n: int) -> bool:
    return n >= MIN_ENVELOPE_BYTES and (n - IV_SIZE) % BLOCK_SIZE == 0


def decrypt(envelope: str, key: EncryptionKey) -> str:
    """Decrypt an envelope produced by either encrypt mode.

    Fails open: if the input is not base64, has the wrong length, does not
    unpad or does not decode as UTF-8, the input is returned unchanged.
    Legacy plaintext therefore reads back as itself, and callers can compare
    the result with the input to tell envelopes from plaintext.
    """
    try:
        raw = base64.b64decode(envelope, validate=True)
    except (binascii.Error, ValueError):
        return envelope
    if not _is_envelope_length(len(raw)):
        return envelope

    iv, ciphertext = raw[:IV_SIZE], raw[IV_SIZE:]
    try:
        return aes_cbc_decrypt(key.material, iv, ciphertext).decode("utf-8")
    except ValueError:
        # bad padding or invalid UTF-8 (UnicodeDecodeError is a ValueError)
        return envelope


def has_envelope_shape(value: str) -> bool:
    """True if value is base64 whose decoded length fits the envelope layout.

    A heuristic only: short base64-looking plaintext can match.
    """
    if not value:
        return False
    try:
        raw = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        return False
    return _is_envelope_length(len(raw))
