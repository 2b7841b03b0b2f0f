"""Liveness and readiness probes."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from folio.core.clock import iso, utcnow
from folio.core.database import check_connection

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@router.get("/readyz")
def readyz():
    """Readiness check: database reachable."""
    ok = check_connection()
    payload = {"ok": ok, "db": {"connected": ok}, "computed_at": iso(utcnow())}
    return JSONResponse(status_code=200 if ok else 503, content=payload)
