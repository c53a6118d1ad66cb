"""FastAPI dependency injection for the field encryption key."""

from __future__ import annotations

from fastapi import HTTPException, Request

from fieldseal.services.cipher import EncryptionKey


def get_encryption_key(request: Request) -> EncryptionKey:
    """Return the process-wide key loaded by the app lifespan.

    Raises HTTPException 503 if the app has not finished starting.
    """
    key = getattr(request.app.state, "encryption_key", None)
    if key is None:
        raise HTTPException(status_code=503, detail="Encryption is not initialized")
    return key

