from __future__ import annotations

from functools import lru_cache

from pydantic import Field, PrivateAttr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from fieldseal.services.cipher import EncryptionKey


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Base64 of 32 random bytes, generate with scripts/generate-encryption-key.py
    encryption_key: str = Field(default="", repr=False)
    db_url: str = "sqlite:///./fieldseal.db"

    _key: EncryptionKey | None = PrivateAttr(default=None)

    @model_validator(mode="after")
    def _check_encryption_key(self) -> Settings:
        # A missing or malformed key is fatal at startup.
        self._key = EncryptionKey.from_base64(self.encryption_key)
        return self

    @property
    def key(self) -> EncryptionKey:
        if self._key is None:
            # model_construct() skips validation
            self._key = EncryptionKey.from_base64(self.encryption_key)
        return self._key


@lru_cache
def get_settings() -> Settings:
    return Settings()
