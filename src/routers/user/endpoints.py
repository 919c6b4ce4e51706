# ── src/routers/user/endpoints.py ────────────────────────────────────────────
"""
Aggregator – one import path for main.py
(from routers.user.endpoints import router as user_router)
while delegating to the dedicated modules.
"""
from fastapi import APIRouter

from .register       import router as register_router
from .login          import router as login_router
from .me             import router as me_router
from .reset_password import router as reset_router
from .admin_users    import router as admin_users_router

router = APIRouter()

router.include_router(register_router)
router.include_router(login_router)
router.include_router(me_router)
router.include_router(reset_router)
router.include_router(admin_users_router)
