# ── src/backend/blobs.py ──────────────────────────────────────────────────────
"""
Blob Uploader: put bytes at a path, get back the public URL.

Azure layout: a single public-read container; the path is used as the blob
name verbatim, so re-uploading the same path overwrites.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from azure.core.exceptions import AzureError
from azure.storage.blob import ContentSettings

from .errors import UploadFailed


class BlobUploader(Protocol):
    def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        ...


class AzureBlobUploader:
    """BlobUploader on top of an azure.storage.blob ContainerClient."""

    def __init__(self, container_client, public_base: str):
        self._cc = container_client
        self._public_base = public_base.rstrip("/")

    def public_url(self, path: str) -> str:
        return f"{self._public_base}/{path}"

    def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        try:
            self._cc.upload_blob(
                name=path,
                data=data,
                overwrite=True,
                content_settings=ContentSettings(
                    content_type=content_type or "application/octet-stream",
                    cache_control="public, max-age=86400",
                ),
            )
        except AzureError as e:
            logging.warning("Blob upload failed for %s: %s", path, e)
            raise UploadFailed(f"Upload failed for {path}: {e}", e)
        return self.public_url(path)
