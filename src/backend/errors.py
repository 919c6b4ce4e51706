# ── src/backend/errors.py ─────────────────────────────────────────────────────
"""
Error taxonomy shared by the storage adapters and the field-log core.

Adapters translate SDK exceptions into these; routers translate these into
HTTPException with the status code the endpoint documents.
"""

from __future__ import annotations

from typing import Optional


class FieldLogError(Exception):
    """Base class; `cause` keeps the underlying exception when there is one."""

    kind = "error"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class BadRequest(FieldLogError):
    kind = "bad_request"


class NotFound(FieldLogError):
    kind = "not_found"


class UploadFailed(FieldLogError):
    kind = "upload_failed"


class StoreFailed(FieldLogError):
    kind = "store_failed"


__all__ = ["FieldLogError", "BadRequest", "NotFound", "UploadFailed", "StoreFailed"]
