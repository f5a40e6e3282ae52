"""User configuration API — per-user provider overrides.

Learn: Two pairs of endpoints over the same user_configs row:
- GET/PUT /user/config → the stored overrides exactly as saved
- GET/POST /config     → the flat settings form, values already resolved
                         against the global defaults

Writes are upserts: the row is created on first save, and fields left
out of a request keep whatever was stored before.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from quarry.auth.dependencies import get_current_user
from quarry.db.engine import get_db
from quarry.db.models import UserConfig
from quarry.schemas.auth import UserPublic
from quarry.schemas.user_config import (
    ConfigForm,
    ResolvedConfig,
    UserConfigRead,
    UserConfigUpdate,
)
from quarry.services.config_resolver import (
    UserConfigService,
    form_to_update,
    load_resolver,
)

router = APIRouter()


def _config_svc(db: AsyncSession = Depends(get_db)) -> UserConfigService:
    return UserConfigService(db)


def _read(row: UserConfig) -> UserConfigRead:
    return UserConfigRead(
        id=row.id,
        user_id=row.user_id,
        providers=row.providers or {},
        models=row.models or {},
        custom_openai_base_url=row.custom_openai_base_url,
        custom_openai_key=row.custom_openai_key,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


# ─── Stored overrides ─────────────────────────────────────


@router.get("/user/config", response_model=UserConfigRead)
async def get_user_config(
    user: UserPublic = Depends(get_current_user),
    svc: UserConfigService = Depends(_config_svc),
):
    """The caller's saved overrides (empty if never saved)."""
    row = await svc.get_row(user.id)
    if row is None:
        return UserConfigRead(user_id=user.id)
    return _read(row)


@router.put("/user/config", response_model=UserConfigRead)
@router.post("/user/config", response_model=UserConfigRead)
async def update_user_config(
    body: UserConfigUpdate,
    user: UserPublic = Depends(get_current_user),
    svc: UserConfigService = Depends(_config_svc),
):
    """Create or partially update the caller's overrides."""
    row = await svc.update_user_config(user.id, body)
    return _read(row)


# ─── Resolved settings form ───────────────────────────────


@router.get("/config", response_model=ResolvedConfig)
async def get_resolved_config(
    user: UserPublic = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Effective provider settings: user override, else global default."""
    resolver = await load_resolver(db, user.id)
    return resolver.as_settings()


@router.post("/config")
async def update_resolved_config(
    body: ConfigForm,
    user: UserPublic = Depends(get_current_user),
    svc: UserConfigService = Depends(_config_svc),
):
    """Save the settings form as the caller's overrides."""
    await svc.update_user_config(user.id, form_to_update(body))
    return {"message": "Config updated"}
