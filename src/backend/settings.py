# ── src/backend/settings.py ───────────────────────────────────────────────────
"""
Environment-backed configuration.

Everything is read once by load_settings(); get_settings() caches the result
for the process. Tests call get_settings.cache_clear() after patching env.
"""

from __future__ import annotations

import os as _os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

GOOGLE_SECURETOKEN_JWKS = (
    "https://www.googleapis.com/service_accounts/v1/jwk/securetoken@system.gserviceaccount.com"
)


# ───────────────────────── env helpers ─────────────────────────

def _env_str(name: str, default: str = "") -> str:
    return (_os.getenv(name) or default).strip()


def _env_int(name: str, default: int) -> int:
    v = _env_str(name)
    try:
        return int(v) if v else default
    except ValueError:
        return default


def _parse_origins(env_value: str) -> list[str]:
    if not env_value:
        return []
    # split by comma or whitespace, trim, drop empties and trailing slashes
    raw = [p.strip() for chunk in env_value.split(",") for p in chunk.split()]
    origins: list[str] = []
    for o in raw:
        o = o.rstrip("/")
        if o and o not in origins:
            origins.append(o)
    return origins


# ───────────────────────── settings ─────────────────────────

@dataclass(frozen=True)
class Settings:
    cosmos_endpoint: Optional[str]
    cosmos_database: str
    cosmos_key: Optional[str]

    field_logs_container: str
    users_container: str
    comments_container: str
    resets_container: str

    images_account: Optional[str]
    images_container: str
    images_public_base: Optional[str]

    secret_key: str
    token_ttl_minutes: int

    identity_project_id: Optional[str]
    identity_jwks_url: str

    reset_webhook_url: Optional[str]
    frontend_origins: tuple[str, ...]
    log_level: str

    # transport limits for multipart uploads
    max_file_bytes: int = 5 * 1024 * 1024
    max_site_photos: int = 10
    max_species_photos: int = 50


def load_settings() -> Settings:
    return Settings(
        cosmos_endpoint=_env_str("COSMOS_ENDPOINT") or None,
        cosmos_database=_env_str("COSMOS_DATABASE", "fieldlogdb"),
        cosmos_key=_env_str("COSMOS_KEY") or None,
        field_logs_container=_env_str("FIELD_LOGS_CONTAINER", "fieldLogs"),
        users_container=_env_str("USERS_CONTAINER", "users"),
        comments_container=_env_str("COMMENTS_CONTAINER", "comments"),
        resets_container=_env_str("RESETS_CONTAINER", "passwordResets"),
        images_account=_env_str("IMAGES_ACCOUNT") or None,
        images_container=_env_str("IMAGES_CONTAINER", "field-photos"),
        images_public_base=_env_str("IMAGES_PUBLIC_BASE").rstrip("/") or None,
        secret_key=_env_str("SECRET_KEY", "change-me"),
        token_ttl_minutes=_env_int("TOKEN_TTL_MINUTES", 60),
        identity_project_id=_env_str("IDENTITY_PROJECT_ID") or None,
        identity_jwks_url=_env_str("IDENTITY_JWKS_URL", GOOGLE_SECURETOKEN_JWKS),
        reset_webhook_url=_env_str("RESET_WEBHOOK_URL") or None,
        frontend_origins=tuple(_parse_origins(_env_str("FRONTEND_ORIGIN"))),
        log_level=_env_str("LOG_LEVEL", "INFO").upper(),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
