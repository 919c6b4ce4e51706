# ── src/routers/user/me.py ───────────────────────────────────────────────────
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from typing import Optional

from backend.clients import get_record_store
from backend.settings import Settings, get_settings
from backend.store import RecordStore

from .common import USERS, public_user
from .tokens import decode_session_token, extract_bearer_token

# ────────────────────────── Pydantic model ─────────────────────
class VerifyTokenIn(BaseModel):
    token: Optional[str] = None

# ──────────────────────────── Router ────────────────────────────
router = APIRouter(prefix="/api/user", tags=["user"])

@router.post("/verify-token")
def verify_token(
    payload: VerifyTokenIn,
    store: RecordStore = Depends(get_record_store),
    settings: Settings = Depends(get_settings),
):
    """
    Check a session token sent in the body and echo the stored profile.
    400 when no token is given, 404 when the user is gone. An expired or invalid
    token answers 401 with {isValid: false, message}.
    """
    if not payload.token:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Token not provided")

    try:
        claims = decode_session_token(payload.token, settings)
    except HTTPException as e:
        return JSONResponse(
            status_code=e.status_code,
            content={"isValid": False, "message": e.detail, "detail": e.detail},
        )
    doc = store.get(USERS, claims["uid"])
    if doc is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    return {"isValid": True, "userData": public_user(claims["uid"], doc)}


@router.get("/me")
def me(
    request: Request,
    store: RecordStore = Depends(get_record_store),
    settings: Settings = Depends(get_settings),
):
    """
    Current-user profile.
    Requires: Authorization: Bearer <token> issued by /login or a federated login.
    """
    claims = decode_session_token(extract_bearer_token(request), settings)
    doc = store.get(USERS, claims["uid"])
    if doc is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    return {
        "uid":       claims["uid"],
        "email":     doc.get("email"),
        "firstName": doc.get("firstName"),
        "lastName":  doc.get("lastName"),
        "photoURL":  doc.get("photoURL"),
        "role":      doc.get("role"),
        "status":    doc.get("status"),
    }
