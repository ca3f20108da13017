from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlmodel import Session, text

from evavault.config import get_settings
from evavault.db import get_session

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
async def health(session: Session = Depends(get_session)):
    db_status = "ok"
    try:
        session.exec(text("SELECT 1"))
    except Exception as exc:
        db_status = f"error: {exc}"

    settings = get_settings()
    return {
        "status": "healthy" if db_status == "ok" else "unhealthy",
        "service": "evavault-backend",
        "version": "0.1.0",
        "checks": {
            "database": db_status,
            "crypto": {
                "kdf": settings.kdf_algorithm,
                "pbkdf2_iterations": settings.pbkdf2_iterations,
                "cipher": "aes-256-gcm",
            },
        },
    }


@router.get("/health/ready")
async def readiness(session: Session = Depends(get_session)):
    try:
        session.exec(text("SELECT 1"))
    except Exception as exc:
        return JSONResponse(
            status_code=503,
            content={
                "status": "not ready",
                "service": "evavault-backend",
                "error": str(exc),
            },
        )

    return {
        "status": "ready",
        "service": "evavault-backend",
    }
