"""Low-level cryptographic primitives for fieldseal.

Pure functions with no domain knowledge.
"""

from __future__ import annotations

import hashlib
import hmac
import os

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

KEY_SIZE = 32  # AES-256
IV_SIZE = 16
BLOCK_SIZE = 16


def aes_cbc_encrypt(key: bytes, iv: bytes, plaintext: bytes) -> bytes:
    """Encrypt plaintext with AES-256-CBC and PKCS7 padding.

    Returns the ciphertext only; the caller owns the IV.
    """
    padder = padding.PKCS7(BLOCK_SIZE * 8).padder()
    padded = padder.update(plaintext) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    return encryptor.update(padded) + encryptor.finalize()


def aes_cbc_decrypt(key: bytes, iv: bytes, ciphertext: bytes) -> bytes:
    """Decrypt data produced by aes_cbc_encrypt.

    Raises ValueError when the ciphertext is not block aligned or the
    PKCS7 padding is invalid (wrong key, tampered or non-ciphertext input).
    """
    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()
    unpadder = padding.PKCS7(BLOCK_SIZE * 8).unpadder()
    return unpadder.update(padded) + unpadder.finalize()


def derive_iv(key: bytes, data: bytes, length: int = IV_SIZE) -> bytes:
    """HMAC-SHA256(key, data) truncated to an IV."""
    return hmac.new(key, data, hashlib.sha256).digest()[:length]


def random_iv(length: int = IV_SIZE) -> bytes:
    return os.urandom(length)


def generate_key() -> bytes:
    """Generate a fresh random 256-bit AES key."""
    return os.urandom(KEY_SIZE)
