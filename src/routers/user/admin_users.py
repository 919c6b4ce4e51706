# ── src/routers/user/admin_users.py ───────────────────────────────────────────
"""
Administrator-only user management.

GET    /api/user/users                 all users (404 when there are none)
GET    /api/user/users/search?q=&role= case-insensitive substring match over
                                       firstName / lastName / email
PUT    /api/user/update-user/{uid}     shallow field patch
DELETE /api/user/delete-user/{uid}     removes the user record

Every route requires a bearer token whose user has role "administrador".
Password hashes are never returned; passwords cannot be set through the patch.
"""

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from typing import Any, Dict, List, Optional
import logging

from backend.clients import get_record_store
from backend.errors import NotFound
from backend.store import RecordStore

from .common import STATUS_ACTIVE, STATUS_INACTIVE, USERS, normalize_role, public_user
from .tokens import require_admin

_IMMUTABLE_FIELDS = {"uid", "id", "password", "provider", "createdAt"}
_SEARCH_FIELDS = ("firstName", "lastName", "email")

# ─────────────────────────── Helpers ──────────────────────────────────────────
def _clean_patch(patch: Dict[str, Any], store: RecordStore, uid: str) -> Dict[str, Any]:
    blocked = sorted(_IMMUTABLE_FIELDS.intersection(patch))
    if blocked:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Fields not editable: {', '.join(blocked)}")

    out = dict(patch)
    if "role" in out:
        role = normalize_role(out["role"])
        if not role:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid role")
        out["role"] = role
    if "status" in out and out["status"] not in (STATUS_ACTIVE, STATUS_INACTIVE):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="status must be 'active' or 'inactive'")
    if "email" in out:
        email = str(out["email"] or "").strip().lower()
        if "@" not in email:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid e-mail")
        if any(key != uid for key, _ in store.find_by_field(USERS, "email", email)):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="E-mail already registered")
        out["email"] = email
    return out


def _matches(doc: Dict[str, Any], needle: str) -> bool:
    return any(needle in str(doc.get(f) or "").lower() for f in _SEARCH_FIELDS)

# ─────────────────────────── Router ───────────────────────────────────────────
router = APIRouter(prefix="/api/user", tags=["user"])


@router.get("/users")
def list_users(
    _admin = Depends(require_admin),
    store: RecordStore = Depends(get_record_store),
) -> List[Dict[str, Any]]:
    rows = store.list(USERS)
    if not rows:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No users found")
    return [public_user(uid, doc) for uid, doc in rows]


@router.get("/users/search")
def search_users(
    q: str = Query("", max_length=100),
    role: Optional[str] = Query(None),
    _admin = Depends(require_admin),
    store: RecordStore = Depends(get_record_store),
) -> List[Dict[str, Any]]:
    role_filter = None
    if role:
        role_filter = normalize_role(role)
        if not role_filter:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid role")

    needle = q.strip().lower()
    hits = []
    for uid, doc in store.list(USERS):
        if role_filter and doc.get("role") != role_filter:
            continue
        if needle and not _matches(doc, needle):
            continue
        hits.append(public_user(uid, doc))
    hits.sort(key=lambda u: (str(u.get("lastName") or "").lower(), str(u.get("firstName") or "").lower()))
    return hits


@router.put("/update-user/{uid}")
def update_user(
    uid: str,
    patch: Dict[str, Any] = Body(...),
    admin = Depends(require_admin),
    store: RecordStore = Depends(get_record_store),
):
    changes = _clean_patch(patch, store, uid)
    try:
        doc = store.update_fields(USERS, uid, changes)
    except NotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    logging.info("User %s updated by %s (%s)", uid, admin[0], ", ".join(sorted(changes)))
    return {"message": "User updated", "user": public_user(uid, doc)}


@router.delete("/delete-user/{uid}")
def delete_user(
    uid: str,
    admin = Depends(require_admin),
    store: RecordStore = Depends(get_record_store),
):
    try:
        store.remove(USERS, uid)
    except NotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    logging.info("User %s deleted by %s", uid, admin[0])
    return {"message": "User deleted"}
