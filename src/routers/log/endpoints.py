# ── src/routers/log/endpoints.py ──────────────────────────────────────
from typing import Any, Dict, List, Optional
import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from pydantic import BaseModel, Field

from backend.blobs import BlobUploader
from backend.clients import get_blob_uploader, get_record_store
from backend.errors import BadRequest, NotFound, StoreFailed, UploadFailed
from backend.settings import Settings, get_settings
from backend.store import RecordStore

from routers.user.tokens import current_user
from .reconcile import (
    FIELD_LOGS,
    PhotoFile,
    create_field_log,
    parse_field_log_data,
    update_field_log,
    utc_now_iso,
)

COMMENTS = "comments"

# ── Pydantic payloads --------------------------------------------------
class CommentIn(BaseModel):
    text: str = Field(..., min_length=1, max_length=2000, description="Comment body")

# ── Router -------------------------------------------------------------
router = APIRouter(prefix="/api/log", tags=["log"])

# ── Helpers ------------------------------------------------------------
def _read_files(
    files: Optional[List[UploadFile]],
    field: str,
    max_count: int,
    max_bytes: int,
    op: str,
    target: str,
) -> List[PhotoFile]:
    """Transport-boundary checks (count / per-file size), then load into memory."""
    files = [f for f in (files or []) if f is not None and f.filename]
    if len(files) > max_count:
        logging.warning("%s %s: %d files for %s (max %d)", op, target, len(files), field, max_count)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Too many files for {field} (max {max_count})",
        )
    out: List[PhotoFile] = []
    for f in files:
        try:
            content = f.file.read()
        finally:
            f.file.close()
        if len(content) > max_bytes:
            logging.warning("%s %s: %s is %d bytes (max %d)", op, target, f.filename, len(content), max_bytes)
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=f"{f.filename} exceeds the {max_bytes // (1024 * 1024)} MB limit",
            )
        out.append(PhotoFile(filename=f.filename, content=content, content_type=f.content_type))
    return out


def _parse_or_400(data: Optional[str], op: str, target: str) -> Dict[str, Any]:
    try:
        return parse_field_log_data(data)
    except BadRequest as e:
        logging.warning("%s %s: %s", op, target, e.message)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)


def _get_log_or_404(store: RecordStore, log_id: str) -> Dict[str, Any]:
    try:
        doc = store.get(FIELD_LOGS, log_id)
    except StoreFailed as e:
        raise HTTPException(status_code=500, detail=f"Error fetching field log: {e.message}")
    if doc is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Field log not found")
    return doc

# ── Field logs ---------------------------------------------------------
@router.post("/new-field-logs", status_code=status.HTTP_201_CREATED, summary="Create a field log")
def new_field_log(
    data:           Optional[str]              = Form(None),
    site_photos:    Optional[List[UploadFile]] = File(None, alias="sitePhotos"),
    species_photos: Optional[List[UploadFile]] = File(None, alias="speciesPhotos[]"),
    store:    RecordStore  = Depends(get_record_store),
    uploader: BlobUploader = Depends(get_blob_uploader),
    settings: Settings     = Depends(get_settings),
):
    op, target = "create_field_log", "(new)"
    form = _parse_or_400(data, op, target)
    site = _read_files(site_photos, "sitePhotos", settings.max_site_photos, settings.max_file_bytes, op, target)
    species = _read_files(
        species_photos, "speciesPhotos[]", settings.max_species_photos, settings.max_file_bytes, op, target
    )

    try:
        key, doc = create_field_log(store, uploader, form, site, species)
    except (UploadFailed, StoreFailed) as e:
        raise HTTPException(status_code=500, detail=f"Error creating field log: {e.message}")

    return {
        "success": True,
        "message": "Field log created",
        "data":    {"id": key, **doc},
    }


@router.post("/update-field-logs/{log_id}", summary="Edit a field log and append photos")
def edit_field_log(
    log_id: str,
    data:           Optional[str]              = Form(None),
    site_photos:    Optional[List[UploadFile]] = File(None, alias="sitePhotos"),
    species_photos: Optional[List[UploadFile]] = File(None, alias="speciesPhotos[]"),
    store:    RecordStore  = Depends(get_record_store),
    uploader: BlobUploader = Depends(get_blob_uploader),
    settings: Settings     = Depends(get_settings),
):
    op = "update_field_log"
    incoming = _parse_or_400(data, op, log_id)
    site = _read_files(site_photos, "sitePhotos", settings.max_site_photos, settings.max_file_bytes, op, log_id)
    species = _read_files(
        species_photos, "speciesPhotos[]", settings.max_species_photos, settings.max_file_bytes, op, log_id
    )

    try:
        doc = update_field_log(store, uploader, log_id, incoming, site, species)
    except NotFound:
        # clients depend on 403 for an unknown id
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Field log not found")
    except (UploadFailed, StoreFailed) as e:
        raise HTTPException(status_code=500, detail=f"Error updating field log: {e.message}")

    return {
        "success": True,
        "message": "Field log updated",
        "data":    {"id": log_id, **doc},
    }


@router.get("/field-logs", summary="List active field logs, newest first")
def list_field_logs(store: RecordStore = Depends(get_record_store)):
    try:
        rows = store.list(FIELD_LOGS)
    except StoreFailed as e:
        raise HTTPException(status_code=500, detail=f"Error fetching field logs: {e.message}")

    active = [{"id": key, **doc} for key, doc in rows if doc.get("status") is True]
    active.sort(key=lambda d: d.get("createdAt") or "", reverse=True)
    return active


@router.get("/field-logs/{log_id}", summary="Fetch one field log")
def get_field_log(log_id: str, store: RecordStore = Depends(get_record_store)):
    return {"id": log_id, **_get_log_or_404(store, log_id)}


@router.delete("/delete-log/{log_id}", summary="Soft-delete a field log")
def delete_field_log(log_id: str, store: RecordStore = Depends(get_record_store)):
    try:
        store.update_fields(FIELD_LOGS, log_id, {"status": False})
    except NotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Field log not found")
    except StoreFailed as e:
        raise HTTPException(status_code=500, detail=f"Error deleting field log: {e.message}")
    return {"success": True, "message": "Field log deleted", "id": log_id}

# ── Comments -----------------------------------------------------------
@router.post("/field-logs/{log_id}/comments", status_code=status.HTTP_201_CREATED,
             summary="Comment on a field log")
def add_comment(
    log_id: str,
    payload: CommentIn,
    user = Depends(current_user),
    store: RecordStore = Depends(get_record_store),
):
    log = _get_log_or_404(store, log_id)
    if log.get("status") is not True:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Field log not found")

    uid, user_doc = user
    comment = {
        "logId":      log_id,
        "authorUid":  uid,
        "authorName": f"{user_doc.get('firstName', '')} {user_doc.get('lastName', '')}".strip(),
        "text":       payload.text,
        "createdAt":  utc_now_iso(),
    }
    try:
        key = store.push_key(COMMENTS)
        store.set(COMMENTS, key, comment)
    except StoreFailed as e:
        raise HTTPException(status_code=500, detail=f"Error saving comment: {e.message}")
    return {"id": key, **comment}


@router.get("/field-logs/{log_id}/comments", summary="List comments, oldest first")
def list_comments(log_id: str, store: RecordStore = Depends(get_record_store)):
    _get_log_or_404(store, log_id)
    try:
        rows = store.find_by_field(COMMENTS, "logId", log_id)
    except StoreFailed as e:
        raise HTTPException(status_code=500, detail=f"Error fetching comments: {e.message}")
    comments = [{"id": key, **doc} for key, doc in rows]
    comments.sort(key=lambda c: c.get("createdAt") or "")
    return comments
