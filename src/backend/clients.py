# ── src/backend/clients.py ────────────────────────────────────────────────────
"""
Init-once construction of the external collaborators, plus the FastAPI
dependency providers that hand them to routers.

- init_backends(settings): builds Cosmos / Blob / JWKS clients. Must be
  called exactly once (the app lifespan does it); a second call raises.
- get_record_store() / get_blob_uploader() / get_identity_verifier():
  Depends() targets. Tests replace them via app.dependency_overrides.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from azure.cosmos import CosmosClient
from azure.identity import DefaultAzureCredential
from azure.storage.blob import BlobServiceClient

from .blobs import AzureBlobUploader, BlobUploader
from .identity import IdentityVerifier, JwksIdentityVerifier, UnconfiguredIdentityVerifier
from .settings import Settings
from .store import CosmosRecordStore, RecordStore


@dataclass
class Backends:
    store: RecordStore
    uploader: BlobUploader
    verifier: IdentityVerifier


_BACKENDS: Optional[Backends] = None


def _build(settings: Settings) -> Backends:
    if not settings.cosmos_endpoint:
        raise RuntimeError("COSMOS_ENDPOINT is not configured.")
    if not settings.images_account:
        raise RuntimeError(
            "IMAGES_ACCOUNT is not configured. "
            "Set app settings IMAGES_ACCOUNT/IMAGES_CONTAINER to enable photo uploads."
        )

    # Managed Identity / Azure CLI unless an account key is supplied
    cred = DefaultAzureCredential()
    cosmos = CosmosClient(settings.cosmos_endpoint, credential=settings.cosmos_key or cred)
    store = CosmosRecordStore(
        cosmos.get_database_client(settings.cosmos_database),
        {
            "fieldLogs": settings.field_logs_container,
            "users": settings.users_container,
            "comments": settings.comments_container,
            "passwordResets": settings.resets_container,
        },
    )

    blob_base = f"https://{settings.images_account}.blob.core.windows.net"
    blob_service = BlobServiceClient(account_url=blob_base, credential=cred)
    uploader = AzureBlobUploader(
        blob_service.get_container_client(settings.images_container),
        settings.images_public_base or f"{blob_base}/{settings.images_container}",
    )

    if settings.identity_project_id:
        verifier: IdentityVerifier = JwksIdentityVerifier(
            settings.identity_jwks_url, settings.identity_project_id
        )
    else:
        logging.warning("IDENTITY_PROJECT_ID not set; federated login disabled")
        verifier = UnconfiguredIdentityVerifier()

    return Backends(store=store, uploader=uploader, verifier=verifier)


def init_backends(settings: Settings) -> Backends:
    global _BACKENDS
    if _BACKENDS is not None:
        raise RuntimeError("init_backends() called twice")
    _BACKENDS = _build(settings)
    logging.info(
        "Backends ready (cosmos db=%s, images container=%s)",
        settings.cosmos_database, settings.images_container,
    )
    return _BACKENDS


def reset_backends() -> None:
    """Forget the built clients (application shutdown)."""
    global _BACKENDS
    _BACKENDS = None


def _require() -> Backends:
    if _BACKENDS is None:
        raise RuntimeError("Backends are not initialised; call init_backends() at start-up")
    return _BACKENDS


def get_record_store() -> RecordStore:
    return _require().store


def get_blob_uploader() -> BlobUploader:
    return _require().uploader


def get_identity_verifier() -> IdentityVerifier:
    return _require().verifier


def backends_ready() -> bool:
    return _BACKENDS is not None
