"""Transparent encrypt-on-write / decrypt-on-read for string columns."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from sqlalchemy.types import String, TypeDecorator

from fieldseal.services.cipher import CipherMode, EncryptionKey, decrypt, encrypt


class EncryptedFieldCodec(Protocol):
    """What the persistence layer needs from an encrypted property."""

    def encode(self, value: str | None) -> str | None: ...

    def decode(self, stored: str | None) -> str | None: ...


@dataclass(frozen=True, slots=True)
class FieldCodec:
    """Codec bound to one key and mode.

    A single type covers deterministic/non-deterministic and required/nullable
    properties. ``nullable`` only describes the column; None passes through
    unchanged in both directions either way.
    """

    key: EncryptionKey
    mode: CipherMode
    nullable: bool = False

    def encode(self, value: str | None) -> str | None:
        if value is None:
            return None
        return encrypt(value, self.key, self.mode)

    def decode(self, stored: str | None) -> str | None:
        if stored is None:
            return None
        return decrypt(stored, self.key)


class EncryptedString(TypeDecorator):
    """String column that stores envelopes and yields plaintext.

    Bound parameters go through the codec too, so an equality filter on a
    deterministic column compares envelopes and works without the caller
    knowing the column is encrypted.
    """

    impl = String
    cache_ok = True

    def __init__(self, codec: EncryptedFieldCodec, length: int | None = None, **kwargs):
        super().__init__(length, **kwargs)
        self.codec = codec

    def process_bind_param(self, value, dialect):
        return self.codec.encode(value)

    def process_result_value(self, value, dialect):
        return self.codec.decode(value)
