"""Tests for fieldseal/config.py: Settings validation of ENCRYPTION_KEY."""
from __future__ import annotations

import base64
import os
from unittest.mock import patch

import pytest


class TestEncryptionKeyValidation:
    """A missing or malformed key must stop the process from starting."""

    def test_missing_key_raises(self):
        from fieldseal.config import Settings

        with patch.dict(os.environ, {"ENCRYPTION_KEY": ""}, clear=False):
            with pytest.raises(ValueError, match="ENCRYPTION_KEY is not set"):
                Settings(_env_file=None)

    def test_whitespace_key_raises(self):
        from fieldseal.config import Settings

        with patch.dict(os.environ, {"ENCRYPTION_KEY": "   "}, clear=False):
            with pytest.raises(ValueError, match="ENCRYPTION_KEY is not set"):
                Settings(_env_file=None)

    def test_non_base64_key_raises(self):
        from fieldseal.config import Settings

        with patch.dict(os.environ, {"ENCRYPTION_KEY": "not base64 at all!"}, clear=False):
            with pytest.raises(ValueError, match="not valid base64"):
                Settings(_env_file=None)

    def test_short_key_raises(self):
        from fieldseal.config import Settings

        short = base64.b64encode(b"k" * 16).decode()
        with patch.dict(os.environ, {"ENCRYPTION_KEY": short}, clear=False):
            with pytest.raises(ValueError, match="exactly 32 bytes"):
                Settings(_env_file=None)

    def test_placeholder_key_raises(self):
        from fieldseal.config import Settings

        with patch.dict(os.environ, {"ENCRYPTION_KEY": "CHANGE_ME"}, clear=False):
            with pytest.raises(ValueError, match="placeholder"):
                Settings(_env_file=None)

    def test_valid_key_passes(self):
        from fieldseal.config import Settings

        raw = os.urandom(32)
        with patch.dict(os.environ, {"ENCRYPTION_KEY": base64.b64encode(raw).decode()}, clear=False):
            s = Settings(_env_file=None)
            assert s.key.material == raw

    def test_key_is_parsed_once(self):
        from fieldseal.config import Settings
        from fieldseal.services.cipher import EncryptionKey

        raw = os.urandom(32)
        with patch.dict(os.environ, {"ENCRYPTION_KEY": base64.b64encode(raw).decode()}, clear=False):
            s = Settings(_env_file=None)
        with patch.object(EncryptionKey, "from_base64", side_effect=AssertionError("parsed again")):
            assert s.key is s.key
            assert s.key.material == raw

    def test_key_not_in_repr(self):
        from fieldseal.config import Settings

        encoded = base64.b64encode(os.urandom(32)).decode()
        with patch.dict(os.environ, {"ENCRYPTION_KEY": encoded}, clear=False):
            s = Settings(_env_file=None)
            assert encoded not in repr(s)


def test_db_url_from_environment():
    from fieldseal.config import Settings

    with patch.dict(os.environ, {"DB_URL": "sqlite:////tmp/other.db"}, clear=False):
        assert Settings(_env_file=None).db_url == "sqlite:////tmp/other.db"
