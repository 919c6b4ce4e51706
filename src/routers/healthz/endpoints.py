# ── src/routers/healthz/endpoints.py ──────────────────────────────────
from fastapi import APIRouter
from fastapi.responses import JSONResponse

from backend import clients

router = APIRouter()

@router.get("/healthz", include_in_schema=False)
def health_check():
    return JSONResponse({"status": "healthy"})

@router.get("/readyz", include_in_schema=False)
def readiness_check():
    # ready once the lifespan hook has built the storage clients
    if not clients.backends_ready():
        return JSONResponse({"status": "starting"}, status_code=503)
    return JSONResponse({"status": "ready"})
