# ── src/routers/log/__init__.py ───────────────────────────────────────
"""
Field-log sub-router.

Create / edit / list / soft-delete field logs (site visits with collected
species and photos) plus per-log comments, all under `/api/log`.

Records live in the `fieldLogs` collection; photos go to the images
container under `site-photos/` and `species-photos/<scientific name>/`.
"""
from .endpoints import router  # re-export for `include_router`
