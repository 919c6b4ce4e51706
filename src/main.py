# ── src/main.py ───────────────────────────────────────────────────────────────
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend import clients
from backend.errors import BadRequest, FieldLogError, NotFound
from backend.settings import get_settings

_settings = get_settings()

logging.basicConfig(
    level=getattr(logging, _settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# ── start-up: build SDK clients exactly once ---------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    clients.init_backends(get_settings())
    try:
        yield
    finally:
        clients.reset_backends()

app = FastAPI(title="Field Log API", lifespan=lifespan)

# ── CORS
# Concrete FRONTEND_ORIGIN list → credentials allowed.
# None configured → wildcard with allow_credentials=False (bearer auth still works).
if _settings.frontend_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(_settings.frontend_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

# ── taxonomy errors that escape a route ---------------------------------------
_STATUS_BY_ERROR = {BadRequest: 400, NotFound: 404}

@app.exception_handler(FieldLogError)
async def field_log_error_handler(request: Request, exc: FieldLogError):
    code = _STATUS_BY_ERROR.get(type(exc), 500)
    logging.error("%s %s failed (%s): %s", request.method, request.url.path, exc.kind, exc.message)
    return JSONResponse(status_code=code, content={"detail": exc.message, "kind": exc.kind})

# ── routers ------------------------------------------------------------------
from routers.healthz.endpoints import router as health_router   # noqa: E402
from routers.log               import router as log_router      # noqa: E402
from routers.user.endpoints    import router as user_router     # noqa: E402

app.include_router(health_router)
app.include_router(log_router)
app.include_router(user_router)

# ── root ---------------------------------------------------------------------
@app.get("/", include_in_schema=False)
def root():
    return {
        "status": "ok",
        "info": (
            "/healthz, /api/log/new-field-logs, /api/log/update-field-logs/{id}, "
            "/api/log/field-logs, /api/log/delete-log/{id}, "
            "/api/user/register, /api/user/login, /api/user/me"
        ),
    }
