# ── src/routers/user/common.py ────────────────────────────────────────────────
"""
Shared helpers for user documents.

- ROLES: the three account roles; ROLE_DEFAULT is what federated sign-ups get.
- hash_password / verify_password: passlib sha256_crypt.
- public_user(uid, doc): the shape returned to clients (never the hash).
- split_display_name(name): "Ada King Lovelace" → ("Ada", "King Lovelace").
- auth_response(...): the {message, user, token, expirationDate} body.
"""

from typing import Any, Dict, Optional, Tuple

from passlib.hash import sha256_crypt

from backend.settings import Settings

USERS = "users"

ROLE_ADMIN = "administrador"
ROLE_RESEARCHER = "investigador"
ROLE_DEFAULT = "colaborador"
ROLES = (ROLE_ADMIN, ROLE_RESEARCHER, ROLE_DEFAULT)

STATUS_ACTIVE = "active"
STATUS_INACTIVE = "inactive"

MIN_PASSWORD_LENGTH = 6

_PRIVATE_FIELDS = ("password",)


def hash_password(pwd: str) -> str:
    return sha256_crypt.hash(pwd)


def verify_password(pwd: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    return sha256_crypt.verify(pwd, hashed)


def normalize_role(role: Optional[str]) -> Optional[str]:
    """Lower-cased role if it is one of ROLES, else None."""
    if not isinstance(role, str):
        return None
    r = role.strip().lower()
    return r if r in ROLES else None


def public_user(uid: str, doc: Dict[str, Any]) -> Dict[str, Any]:
    out = {k: v for k, v in doc.items() if k not in _PRIVATE_FIELDS}
    out["uid"] = uid
    return out


def split_display_name(name: Optional[str]) -> Tuple[str, str]:
    parts = (name or "").split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def auth_response(message: str, uid: str, doc: Dict[str, Any], settings: Settings) -> Dict[str, Any]:
    # local import: tokens imports this module
    from .tokens import make_session_token

    token, expiration = make_session_token(uid, doc, settings)
    user = {
        "uid":       uid,
        "email":     doc.get("email"),
        "firstName": doc.get("firstName"),
        "lastName":  doc.get("lastName"),
        "photoURL":  doc.get("photoURL"),
        "role":      doc.get("role"),
        "status":    doc.get("status", STATUS_ACTIVE),
    }
    return {"message": message, "user": user, "token": token, "expirationDate": expiration}


__all__ = [
    "USERS",
    "ROLES",
    "ROLE_ADMIN",
    "ROLE_RESEARCHER",
    "ROLE_DEFAULT",
    "STATUS_ACTIVE",
    "STATUS_INACTIVE",
    "MIN_PASSWORD_LENGTH",
    "hash_password",
    "verify_password",
    "normalize_role",
    "public_user",
    "split_display_name",
    "auth_response",
]
