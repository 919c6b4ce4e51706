# ── src/routers/log/reconcile.py ──────────────────────────────────────────────
"""
Field-log creation and edit reconciliation.

Creation
--------
Site photos go under `site-photos/`; every species entry gets the *whole*
species-photo batch uploaded under its own `species-photos/<name>/` folder.

Edit (reconcile_log)
--------------------
- Species are matched to the stored record by exact `scientificName`.
- Matched species keep their stored `photos` untouched.
- The first incoming species whose name is not in the stored record is the
  only one that receives the request's species photos; any later new species
  start with no photos. The multipart form carries one undifferentiated
  batch, so there is no way to route files to more than one species.
- New site photos are appended after the stored ones, in upload order.
- Incoming top-level fields overlay the stored ones; `createdAt`, `status`
  and `id` are never taken from the request.

Uploads inside one group run concurrently and are awaited as a whole before
anything is written. Any upload failure aborts the operation before the
store write.

The stored record is read and overwritten without a version check; two
concurrent edits of the same log can lose one of them.
"""

from __future__ import annotations

import datetime as _dt
import json
import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from backend.blobs import BlobUploader
from backend.errors import BadRequest, FieldLogError, NotFound, UploadFailed
from backend.store import RecordStore

FIELD_LOGS = "fieldLogs"
SITE_PHOTOS_NAMESPACE = "site-photos"
SPECIES_PHOTOS_NAMESPACE = "species-photos"

# Fields owned by the server; a request can never set them directly
_PROTECTED = ("id", "createdAt", "status")

_MAX_UPLOAD_WORKERS = 8


@dataclass(frozen=True)
class PhotoFile:
    filename: str
    content: bytes
    content_type: Optional[str] = None


# ───────────────────────── helpers ─────────────────────────

def utc_now_iso() -> str:
    now = _dt.datetime.now(_dt.timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _now_ms() -> int:
    return int(time.time() * 1000)


def _parse_iso(value: Any) -> Optional[_dt.datetime]:
    """Timestamp string to aware datetime; None when absent or unparsable."""
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = _dt.datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=_dt.timezone.utc)
    return parsed


def sanitize_filename(name: Optional[str]) -> str:
    return re.sub(r"[^A-Za-z0-9.]", "_", name or "")


def species_namespace(scientific_name: Optional[str]) -> str:
    segment = re.sub(r"[^A-Za-z0-9]", "_", scientific_name or "") or "unknown"
    return f"{SPECIES_PHOTOS_NAMESPACE}/{segment}"


def photo_path(namespace: str, filename: Optional[str]) -> str:
    return f"{namespace}/{_now_ms()}-{sanitize_filename(filename)}"


def _upload_one(uploader: BlobUploader, photo: PhotoFile, namespace: str) -> str:
    path = photo_path(namespace, photo.filename)
    try:
        return uploader.upload(path, photo.content, photo.content_type)
    except UploadFailed:
        raise
    except Exception as e:
        raise UploadFailed(f"Error uploading {photo.filename}: {e}", e)


def upload_group(uploader: BlobUploader, files: Sequence[PhotoFile], namespace: str) -> List[str]:
    """Upload a batch concurrently; URLs come back in the order of `files`."""
    if not files:
        return []
    workers = min(len(files), _MAX_UPLOAD_WORKERS)
    with ThreadPoolExecutor(max_workers=workers) as pool:
        return list(pool.map(lambda f: _upload_one(uploader, f, namespace), files))


def parse_field_log_data(raw: Optional[str]) -> Dict[str, Any]:
    """
    Decode the multipart `data` field. Raises BadRequest unless it is a JSON
    object whose `collectedSpecies` is a list of objects.
    """
    if not raw:
        raise BadRequest("No form data received")
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise BadRequest(f"data is not valid JSON: {e}", e)
    if not isinstance(data, dict):
        raise BadRequest("data must be a JSON object")

    species = data.get("collectedSpecies")
    if not isinstance(species, list):
        raise BadRequest("collectedSpecies must be a list")
    for entry in species:
        if not isinstance(entry, dict):
            raise BadRequest("collectedSpecies entries must be objects")
        name = entry.get("scientificName")
        if name is not None and not isinstance(name, str):
            raise BadRequest("scientificName must be a string")
    return data


# ───────────────────────── creation ─────────────────────────

def build_new_log(
    data: Dict[str, Any],
    site_files: Sequence[PhotoFile],
    species_files: Sequence[PhotoFile],
    uploader: BlobUploader,
    now: Optional[str] = None,
) -> Dict[str, Any]:
    site_urls = upload_group(uploader, site_files, SITE_PHOTOS_NAMESPACE)

    species_out = []
    for species in data["collectedSpecies"]:
        urls = upload_group(uploader, species_files, species_namespace(species.get("scientificName")))
        species_out.append({**species, "photos": urls})

    ts = now or utc_now_iso()
    doc = {k: v for k, v in data.items() if k not in _PROTECTED}
    doc.update({
        "sitePhotos":       site_urls,
        "collectedSpecies": species_out,
        "createdAt":        ts,
        "updatedAt":        ts,
        "status":           True,
    })
    return doc


# ───────────────────────── reconciliation ─────────────────────────

def _new_species_target(existing_names: set, incoming_species: Sequence[Dict[str, Any]]) -> Optional[int]:
    for idx, species in enumerate(incoming_species):
        if species.get("scientificName") not in existing_names:
            return idx
    return None


def reconcile_log(
    existing: Dict[str, Any],
    incoming: Dict[str, Any],
    site_files: Sequence[PhotoFile],
    species_files: Sequence[PhotoFile],
    uploader: BlobUploader,
    now: Optional[str] = None,
) -> Dict[str, Any]:
    stored_species = {
        s.get("scientificName"): s
        for s in existing.get("collectedSpecies") or []
        if isinstance(s, dict)
    }
    incoming_species = incoming["collectedSpecies"]
    target = _new_species_target(set(stored_species), incoming_species)

    species_out = []
    for idx, species in enumerate(incoming_species):
        name = species.get("scientificName")
        match = stored_species.get(name)
        photos = list(match.get("photos") or []) if match else []

        if idx == target and species_files:
            photos.extend(upload_group(uploader, species_files, species_namespace(name)))

        merged = {k: v for k, v in species.items() if k != "photos"}
        merged["photos"] = photos
        species_out.append(merged)

    site_photos = list(existing.get("sitePhotos") or [])
    site_photos.extend(upload_group(uploader, site_files, SITE_PHOTOS_NAMESPACE))

    ts = now or utc_now_iso()
    previous = existing.get("updatedAt")
    prev_dt, now_dt = _parse_iso(previous), _parse_iso(ts)
    if prev_dt and now_dt and prev_dt > now_dt:
        ts = previous

    doc = dict(existing)
    doc.update({k: v for k, v in incoming.items() if k not in _PROTECTED})
    doc["sitePhotos"] = site_photos
    doc["collectedSpecies"] = species_out
    doc["updatedAt"] = ts
    doc.pop("id", None)
    return doc


# ───────────────────────── store-facing entry points ─────────────────────────

def create_field_log(
    store: RecordStore,
    uploader: BlobUploader,
    data: Dict[str, Any],
    site_files: Sequence[PhotoFile],
    species_files: Sequence[PhotoFile],
) -> Tuple[str, Dict[str, Any]]:
    try:
        doc = build_new_log(data, site_files, species_files, uploader)
        key = store.push_key(FIELD_LOGS)
        store.set(FIELD_LOGS, key, doc)
    except FieldLogError as e:
        logging.exception("create_field_log failed: %s", e.message)
        raise
    logging.info("Field log %s created (%d site photos)", key, len(doc["sitePhotos"]))
    return key, doc


def update_field_log(
    store: RecordStore,
    uploader: BlobUploader,
    log_id: str,
    incoming: Dict[str, Any],
    site_files: Sequence[PhotoFile],
    species_files: Sequence[PhotoFile],
) -> Dict[str, Any]:
    try:
        existing = store.get(FIELD_LOGS, log_id)
        if existing is None:
            raise NotFound(f"Field log {log_id} not found")
        doc = reconcile_log(existing, incoming, site_files, species_files, uploader)
        store.set(FIELD_LOGS, log_id, doc)
    except NotFound:
        logging.warning("update_field_log: %s not found", log_id)
        raise
    except FieldLogError as e:
        logging.exception("update_field_log failed for %s: %s", log_id, e.message)
        raise
    logging.info("Field log %s updated", log_id)
    return doc
