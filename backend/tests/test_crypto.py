"""Tests for fieldseal/utils/crypto.py."""

from __future__ import annotations

import os

import pytest

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


class TestAesCbc:
    def test_roundtrip(self) -> None:
        key = generate_key()
        iv = random_iv()
        data = aes_cbc_encrypt(key, iv, b"Hello, fieldseal!")
        assert aes_cbc_decrypt(key, iv, data) == b"Hello, fieldseal!"

    @pytest.mark.parametrize("size", [0, 1, 15, 16, 17, 31, 32, 100])
    def test_ciphertext_is_padded_to_next_block(self, size: int) -> None:
        """PKCS7 always adds padding, so an aligned input gains a full block."""
        data = aes_cbc_encrypt(generate_key(), random_iv(), b"a" * size)
        assert len(data) % BLOCK_SIZE == 0
        assert len(data) == (size // BLOCK_SIZE + 1) * BLOCK_SIZE

    def test_unaligned_ciphertext_raises(self) -> None:
        key = generate_key()
        iv = random_iv()
        data = aes_cbc_encrypt(key, iv, b"test data")
        with pytest.raises(ValueError):
            aes_cbc_decrypt(key, iv, data[:-1])

    def test_same_iv_same_output(self) -> None:
        key = generate_key()
        iv = random_iv()
        assert aes_cbc_encrypt(key, iv, b"x") == aes_cbc_encrypt(key, iv, b"x")


class TestDeriveIv:
    def test_length(self) -> None:
        assert len(derive_iv(os.urandom(32), b"data")) == IV_SIZE

    def test_deterministic(self) -> None:
        key = os.urandom(32)
        assert derive_iv(key, b"same") == derive_iv(key, b"same")

    def test_depends_on_data_and_key(self) -> None:
        key = os.urandom(32)
        assert derive_iv(key, b"a") != derive_iv(key, b"b")
        assert derive_iv(key, b"a") != derive_iv(os.urandom(32), b"a")


def test_generate_key() -> None:
    k1 = generate_key()
    k2 = generate_key()
    assert len(k1) == KEY_SIZE
    assert k1 != k2


def test_random_iv_differs() -> None:
    assert random_iv() != random_iv()
