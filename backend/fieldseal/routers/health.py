from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlmodel import Session, text

from fieldseal.db import get_session
from fieldseal.dependencies import get_encryption_key
from fieldseal.services.cipher import (
    CipherMode,
    EncryptionKey,
    decrypt,
    encrypt,
)
from fieldseal.services.policy import FIELD_POLICIES

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["health"])

_CANARY = "fieldseal-canary@example.com"


def _encryption_self_test(key: EncryptionKey) -> str:
    """Round-trip a canary value through both modes with the live key."""
    try:
        for mode in CipherMode:
            envelope = encrypt(_CANARY, key, mode)
            if envelope == _CANARY or decrypt(envelope, key) != _CANARY:
                return "error: round trip mismatch"
        if encrypt(_CANARY, key, CipherMode.DETERMINISTIC) != encrypt(
            _CANARY, key, CipherMode.DETERMINISTIC
        ):
            return "error: deterministic mode is not stable"
    except Exception as exc:
        logger.exception("Encryption self-test failed")
        return f"error: {exc}"
    return "ok"


@router.get("/health")
async def health(
    session: Session = Depends(get_session),
    key: EncryptionKey = Depends(get_encryption_key),
):
    db_status = "ok"
    try:
        session.exec(text("SELECT 1"))
    except Exception as exc:
        db_status = f"error: {exc}"

    encryption_status = _encryption_self_test(key)

    is_healthy = db_status == "ok" and encryption_status == "ok"
    return {
        "status": "healthy" if is_healthy else "unhealthy",
        "service": "fieldseal",
        "version": "0.1.0",
        "checks": {
            "database": db_status,
            "encryption": encryption_status,
        },
        "encrypted_fields": [
            {"table": p.table, "column": p.column, "mode": p.mode.value}
            for p in FIELD_POLICIES
        ],
    }


@router.get("/health/ready")
async def readiness(request: Request, session: Session = Depends(get_session)):
    """Ready once the key is loaded and the database answers."""
    checks = {
        "encryption_key": "loaded"
        if getattr(request.app.state, "encryption_key", None) is not None
        else "missing",
    }
    try:
        session.exec(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as exc:
        checks["database"] = f"error: {exc}"

    if checks["encryption_key"] != "loaded" or checks["database"] != "ok":
        return JSONResponse(
            status_code=503,
            content={
                "status": "not ready",
                "service": "fieldseal",
                "checks": checks,
            },
        )

    return {
        "status": "ready",
        "service": "fieldseal",
        "checks": checks,
    }
