# ── src/routers/user/login.py ────────────────────────────────────────────────
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from typing import Any, Dict, Optional, Tuple
import logging

from backend.clients import get_identity_verifier, get_record_store
from backend.identity import IdentityVerifier, InvalidIdentityToken
from backend.settings import Settings, get_settings
from backend.store import RecordStore

from routers.log.reconcile import utc_now_iso
from .common import (
    ROLE_DEFAULT,
    STATUS_ACTIVE,
    STATUS_INACTIVE,
    USERS,
    auth_response,
    split_display_name,
    verify_password,
)

# ────────────────────────── Pydantic models ─────────────────────
class LoginIn(BaseModel):
    email:    Optional[str] = None
    password: Optional[str] = None

class GoogleLoginIn(BaseModel):
    idToken: Optional[str] = None

class AccessTokenLoginIn(BaseModel):
    accessToken: Optional[str] = None

# ───────────────────────── helper functions ────────────────────
def _find_user_by_email(store: RecordStore, email: str) -> Optional[Tuple[str, Dict[str, Any]]]:
    """E-mails are stored lower-cased and unique, so at most one hit."""
    hits = store.find_by_field(USERS, "email", email.strip().lower())
    return hits[0] if hits else None

def _federated_login(
    provider: str,
    token: Optional[str],
    store: RecordStore,
    verifier: IdentityVerifier,
    settings: Settings,
) -> Dict[str, Any]:
    if not token:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Token is required")

    try:
        claims = verifier.verify(token)
    except InvalidIdentityToken as e:
        logging.warning("%s login rejected: %s", provider, e)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=f"{provider.capitalize()} authentication failed")

    uid = claims["uid"]
    doc = store.get(USERS, uid)
    if doc is None:
        # First sign-in: create a minimal profile with the default role
        first, last = split_display_name(claims.get("name"))
        doc = {
            "firstName": first,
            "lastName":  last,
            "photoURL":  claims.get("picture"),
            "role":      ROLE_DEFAULT,
            "status":    STATUS_ACTIVE,
            "provider":  provider,
            "createdAt": utc_now_iso(),
        }
        if claims.get("email"):
            doc["email"] = str(claims["email"]).lower()
        store.set(USERS, uid, doc)
        logging.info("User %s created via %s login", uid, provider)

    if doc.get("status") == STATUS_INACTIVE:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User is inactive")

    return auth_response(f"{provider.capitalize()} login successful", uid, doc, settings)

# ──────────────────────────── Router ────────────────────────────
router = APIRouter(prefix="/api/user", tags=["user"])

@router.post("/login")
def login(
    creds: LoginIn,
    store: RecordStore = Depends(get_record_store),
    settings: Settings = Depends(get_settings),
):
    if not creds.email or not creds.password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing required fields")

    hit = _find_user_by_email(store, creds.email)
    if not hit or not verify_password(creds.password, hit[1].get("password")):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")

    uid, doc = hit
    if doc.get("status") == STATUS_INACTIVE:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User is inactive")

    return auth_response("Login successful", uid, doc, settings)


@router.post("/google-login")
def google_login(
    payload: GoogleLoginIn,
    store: RecordStore = Depends(get_record_store),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
    settings: Settings = Depends(get_settings),
):
    return _federated_login("google", payload.idToken, store, verifier, settings)


@router.post("/github-login")
def github_login(
    payload: AccessTokenLoginIn,
    store: RecordStore = Depends(get_record_store),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
    settings: Settings = Depends(get_settings),
):
    return _federated_login("github", payload.accessToken, store, verifier, settings)


@router.post("/twitter-login")
def twitter_login(
    payload: AccessTokenLoginIn,
    store: RecordStore = Depends(get_record_store),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
    settings: Settings = Depends(get_settings),
):
    return _federated_login("twitter", payload.accessToken, store, verifier, settings)
