# ── src/routers/user/reset_password.py ────────────────────────────────────────
"""
Password reset via single-use codes.

POST /api/user/reset-password          { email }
  Always answers 200 with the same message (no account enumeration).
  For a password account, stores a 20-char code valid for 30 minutes and,
  when RESET_WEBHOOK_URL is set, POSTs { email, code } there for delivery.

POST /api/user/reset-password/confirm  { code, newPassword }
  400 on a missing field, a password under MIN_PASSWORD_LENGTH, or an unknown /
  expired / consumed code; otherwise sets the new password
  and marks the code consumed.

Store layout (collection: passwordResets, key = code)
-----------------------------------------------------
{
  "uid": "<user key>",
  "email": "<email>",
  "createdAt": "<ISO-utc>",
  "expiresAt": "<ISO-utc>",
  "consumed": false|true
}
"""

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from typing import Optional
import datetime, logging, secrets, string

import requests

from backend.clients import get_record_store
from backend.settings import Settings, get_settings
from backend.store import RecordStore

from .common import MIN_PASSWORD_LENGTH, USERS, hash_password

RESETS = "passwordResets"

_CODE_TTL = datetime.timedelta(minutes=30)
_RANDOM_ALPHABET = string.ascii_uppercase + string.digits
_GENERIC_MESSAGE = "If the address belongs to an account, a reset code has been sent."

# ────────────────────────── Schemas ──────────────────────────────────
class ResetRequestIn(BaseModel):
    email: Optional[str] = None

class ResetConfirmIn(BaseModel):
    code:        Optional[str] = None
    newPassword: Optional[str] = None

# ────────────────────────── Helpers ──────────────────────────────────
def _now_utc() -> datetime.datetime:
    return datetime.datetime.now(tz=datetime.timezone.utc)

def _iso(dt: datetime.datetime) -> str:
    return dt.astimezone(datetime.timezone.utc).isoformat().replace("+00:00", "Z")

def _gen_code(n: int = 20) -> str:
    return "".join(secrets.choice(_RANDOM_ALPHABET) for _ in range(n))

def _deliver(webhook_url: Optional[str], email: str, code: str) -> None:
    if not webhook_url:
        logging.warning("RESET_WEBHOOK_URL not set; reset code for a user was stored but not delivered")
        return
    try:
        resp = requests.post(webhook_url, json={"email": email, "code": code}, timeout=5.0)
        resp.raise_for_status()
    except requests.RequestException as e:
        logging.warning("Reset code delivery failed: %s", e)

# ─────────────────────────── Router ──────────────────────────────────
router = APIRouter(prefix="/api/user", tags=["user"])

@router.post("/reset-password")
def request_reset(
    payload: ResetRequestIn,
    store: RecordStore = Depends(get_record_store),
    settings: Settings = Depends(get_settings),
):
    if not payload.email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="An e-mail address is required")

    email = payload.email.strip().lower()
    hits = store.find_by_field(USERS, "email", email)
    if hits and hits[0][1].get("password"):
        uid = hits[0][0]
        now = _now_utc()
        code = _gen_code()
        store.set(RESETS, code, {
            "uid":       uid,
            "email":     email,
            "createdAt": _iso(now),
            "expiresAt": _iso(now + _CODE_TTL),
            "consumed":  False,
        })
        logging.info("Password reset requested for %s", uid)
        _deliver(settings.reset_webhook_url, email, code)

    return {"message": _GENERIC_MESSAGE}


@router.post("/reset-password/confirm")
def confirm_reset(payload: ResetConfirmIn, store: RecordStore = Depends(get_record_store)):
    if not payload.code or not payload.newPassword:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="code and newPassword are required")
    if len(payload.newPassword) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
        )

    doc = store.get(RESETS, payload.code)
    if not doc or doc.get("consumed"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or used reset code")

    expires = datetime.datetime.fromisoformat(doc["expiresAt"].replace("Z", "+00:00"))
    if expires <= _now_utc():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Reset code expired")

    user = store.get(USERS, doc["uid"])
    if user is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or used reset code")

    store.update_fields(USERS, doc["uid"], {"password": hash_password(payload.newPassword)})
    store.update_fields(RESETS, payload.code, {"consumed": True, "consumedAt": _iso(_now_utc())})
    logging.info("Password reset completed for %s", doc["uid"])
    return {"message": "Password updated"}
