"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Auth is applied at the include_router level using FastAPI's
dependencies parameter. Health and auth routers are open (auth handles
its own /me check); user routes need any logged-in user; admin routes
need an admin.
"""

from fastapi import APIRouter, Depends

from quarry.api.admin import router as admin_router
from quarry.api.auth import router as auth_router
from quarry.api.chats import router as chats_router
from quarry.api.health import router as health_router
from quarry.api.user_config import router as user_config_router
from quarry.auth.dependencies import get_current_user, require_admin

_auth = [Depends(get_current_user)]
_admin = [Depends(require_admin)]

api_router = APIRouter(prefix="/api/v1")

# Open routes — no auth required
api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])

# Protected routes — require a valid access token
api_router.include_router(user_config_router, tags=["config"], dependencies=_auth)
api_router.include_router(chats_router, tags=["chats"], dependencies=_auth)

# Admin routes — require role == admin
api_router.include_router(admin_router, tags=["admin"], dependencies=_admin)
