# ── src/routers/user/tokens.py ───────────────────────────────────────────────
"""
Session tokens (HS256, SECRET_KEY) and the request-level auth dependencies.

Claims: uid (also as sub), email, firstName, lastName, photoURL, role, exp.
"""

from __future__ import annotations

import datetime
from typing import Any, Dict, Optional, Tuple

import jwt
from fastapi import Depends, HTTPException, Request, status

from backend.clients import get_record_store
from backend.settings import Settings, get_settings
from backend.store import RecordStore

from .common import ROLE_ADMIN, USERS


def make_session_token(uid: str, user: Dict[str, Any], settings: Settings) -> Tuple[str, int]:
    """Return (token, expirationDate in ms since epoch)."""
    exp = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(minutes=settings.token_ttl_minutes)
    exp_s = int(exp.timestamp())
    claims = {
        "sub":       uid,
        "uid":       uid,
        "email":     user.get("email"),
        "firstName": user.get("firstName"),
        "lastName":  user.get("lastName"),
        "photoURL":  user.get("photoURL"),
        "role":      user.get("role"),
        "exp":       exp_s,
    }
    token = jwt.encode(claims, settings.secret_key, algorithm="HS256")
    return token, exp_s * 1000


def decode_session_token(token: str, settings: Settings) -> Dict[str, Any]:
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    if not payload.get("uid"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token (no subject)")
    return payload


def extract_bearer_token(req: Request) -> str:
    auth = req.headers.get("Authorization", "")
    if not auth.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    return auth.split(" ", 1)[1].strip()


def current_claims(request: Request, settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
    return decode_session_token(extract_bearer_token(request), settings)


def current_user(
    claims: Dict[str, Any] = Depends(current_claims),
    store: RecordStore = Depends(get_record_store),
) -> Tuple[str, Dict[str, Any]]:
    uid = claims["uid"]
    doc: Optional[Dict[str, Any]] = store.get(USERS, uid)
    if not doc:
        # token is valid but user doc is gone → treat as unauthorized
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    if doc.get("status") == "inactive":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User is inactive")
    return uid, doc


def require_admin(user: Tuple[str, Dict[str, Any]] = Depends(current_user)) -> Tuple[str, Dict[str, Any]]:
    if user[1].get("role") != ROLE_ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin only")
    return user
