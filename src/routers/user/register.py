# ── src/routers/user/register.py ─────────────────────────────────────────────
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from pydantic import BaseModel, EmailStr, Field, ValidationError
import logging

from backend.blobs import BlobUploader
from backend.clients import get_blob_uploader, get_record_store
from backend.errors import StoreFailed, UploadFailed
from backend.settings import Settings, get_settings
from backend.store import RecordStore

from routers.log.reconcile import utc_now_iso
from .common import (
    MIN_PASSWORD_LENGTH,
    STATUS_ACTIVE,
    USERS,
    auth_response,
    hash_password,
    normalize_role,
)

# ────────────────────────── Pydantic model ─────────────────────
class RegisterForm(BaseModel):
    firstName: str      = Field(..., min_length=1, max_length=64)
    lastName:  str      = Field(..., min_length=1, max_length=64)
    email:     EmailStr
    password:  str      = Field(..., min_length=MIN_PASSWORD_LENGTH)
    role:      str

# ──────────────────────────── Router ────────────────────────────
router = APIRouter(prefix="/api/user", tags=["user"])

@router.post("/register")
def register(
    firstName: Optional[str] = Form(None),
    lastName:  Optional[str] = Form(None),
    email:     Optional[str] = Form(None),
    password:  Optional[str] = Form(None),
    role:      Optional[str] = Form(None),
    photo:     Optional[UploadFile] = File(None),
    store:    RecordStore  = Depends(get_record_store),
    uploader: BlobUploader = Depends(get_blob_uploader),
    settings: Settings     = Depends(get_settings),
):
    if not (firstName and lastName and email and password and role) or photo is None or not photo.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing required fields")

    role_norm = normalize_role(role)
    if not role_norm:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid role")

    try:
        form = RegisterForm(firstName=firstName, lastName=lastName, email=email, password=password, role=role_norm)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.errors()[0].get("msg", "Invalid form"))

    email_key = form.email.lower()
    try:
        if store.find_by_field(USERS, "email", email_key):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="E-mail already registered")
    except StoreFailed as e:
        raise HTTPException(status_code=500, detail=e.message)

    try:
        content = photo.file.read()
    finally:
        photo.file.close()
    if len(content) > settings.max_file_bytes:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="Photo exceeds size limit")

    uid = store.push_key(USERS)
    try:
        photo_url = uploader.upload(f"users/{uid}/profile.jpg", content, photo.content_type)
    except UploadFailed as e:
        logging.exception("register: profile photo upload failed for %s", uid)
        raise HTTPException(status_code=500, detail=e.message)

    doc = {
        "firstName": form.firstName,
        "lastName":  form.lastName,
        "email":     email_key,
        "password":  hash_password(form.password),
        "photoURL":  photo_url,
        "role":      role_norm,
        "status":    STATUS_ACTIVE,
        "provider":  "password",
        "createdAt": utc_now_iso(),
    }
    try:
        store.set(USERS, uid, doc)
    except StoreFailed as e:
        raise HTTPException(status_code=500, detail=e.message)

    logging.info("User %s registered with role %s", uid, role_norm)
    return auth_response("User registered", uid, doc, settings)
