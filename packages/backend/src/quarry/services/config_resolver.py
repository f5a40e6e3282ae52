"""Per-user provider configuration: storage and resolution.

Learn: Every provider credential is resolved field by field through a
fallback chain ("tiers"):

    1. user_configs.providers[KEY][FIELD]          (if non-empty)
    2. user_configs.custom_openai_base_url / _key  (CUSTOM_OPENAI only)
    3. settings.models.KEY.FIELD                   (global default)
    4. ""                                          (nothing configured)

Tiers apply to each field separately, so a user may override only the
OpenAI key and still inherit the global Ollama URL. A user without a
user_configs row resolves exactly like a user with an empty one.

Tier 2 exists because custom-OpenAI settings were first stored as two
top-level columns. When both the nested entry and a legacy column are
set, the nested entry wins (it is the more specific one).
"""

import uuid
from typing import Any, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from quarry.config import settings
from quarry.db.models import UserConfig
from quarry.providers import ModelsConfig, ProviderField, ProviderKey, ProviderOverride
from quarry.schemas.user_config import (
    ConfigForm,
    ResolvedConfig,
    UserConfigData,
    UserConfigUpdate,
)

logger = structlog.get_logger()

# Legacy top-level columns, read only for CUSTOM_OPENAI
_LEGACY_FIELDS = {
    ProviderField.API_URL: "custom_openai_base_url",
    ProviderField.API_KEY: "custom_openai_key",
}

# Flat settings-form key → (provider, field)
FORM_FIELDS: dict[str, tuple[ProviderKey, ProviderField]] = {
    "openaiApiKey": (ProviderKey.OPENAI, ProviderField.API_KEY),
    "groqApiKey": (ProviderKey.GROQ, ProviderField.API_KEY),
    "anthropicApiKey": (ProviderKey.ANTHROPIC, ProviderField.API_KEY),
    "geminiApiKey": (ProviderKey.GEMINI, ProviderField.API_KEY),
    "ollamaApiUrl": (ProviderKey.OLLAMA, ProviderField.API_URL),
    "ollamaApiKey": (ProviderKey.OLLAMA, ProviderField.API_KEY),
    "deepseekApiKey": (ProviderKey.DEEPSEEK, ProviderField.API_KEY),
    "aimlApiKey": (ProviderKey.AIMLAPI, ProviderField.API_KEY),
    "lmStudioApiUrl": (ProviderKey.LM_STUDIO, ProviderField.API_URL),
    "lemonadeApiUrl": (ProviderKey.LEMONADE, ProviderField.API_URL),
    "lemonadeApiKey": (ProviderKey.LEMONADE, ProviderField.API_KEY),
    "customOpenaiApiUrl": (ProviderKey.CUSTOM_OPENAI, ProviderField.API_URL),
    "customOpenaiApiKey": (ProviderKey.CUSTOM_OPENAI, ProviderField.API_KEY),
    "customOpenaiModelName": (ProviderKey.CUSTOM_OPENAI, ProviderField.MODEL_NAME),
}


# ═══════════════════════════════════════════════════════════
# Resolution
# ═══════════════════════════════════════════════════════════


class ConfigResolver:
    """Resolves provider credentials for one user.

    Build one per request (see load_resolver) and call as many accessors
    as needed; the user's config is read from the database only once.
    """

    def __init__(
        self,
        user_config: UserConfigData,
        defaults: Optional[ModelsConfig] = None,
    ):
        self.user_config = user_config
        self.defaults = defaults if defaults is not None else settings.models

    def resolve(self, provider: ProviderKey, field: ProviderField) -> str:
        override = self.user_config.providers.get(provider.value)
        if override is not None:
            value = getattr(override, field.value)
            if value:
                return value

        if provider is ProviderKey.CUSTOM_OPENAI and field in _LEGACY_FIELDS:
            value = getattr(self.user_config, _LEGACY_FIELDS[field])
            if value:
                return value

        return getattr(self.defaults.get(provider), field.value) or ""

    # ─── Named accessors ──────────────────────────────────

    def openai_api_key(self) -> str:
        return self.resolve(ProviderKey.OPENAI, ProviderField.API_KEY)

    def groq_api_key(self) -> str:
        return self.resolve(ProviderKey.GROQ, ProviderField.API_KEY)

    def anthropic_api_key(self) -> str:
        return self.resolve(ProviderKey.ANTHROPIC, ProviderField.API_KEY)

    def gemini_api_key(self) -> str:
        return self.resolve(ProviderKey.GEMINI, ProviderField.API_KEY)

    def ollama_api_url(self) -> str:
        return self.resolve(ProviderKey.OLLAMA, ProviderField.API_URL)

    def ollama_api_key(self) -> str:
        return self.resolve(ProviderKey.OLLAMA, ProviderField.API_KEY)

    def deepseek_api_key(self) -> str:
        return self.resolve(ProviderKey.DEEPSEEK, ProviderField.API_KEY)

    def aimlapi_api_key(self) -> str:
        return self.resolve(ProviderKey.AIMLAPI, ProviderField.API_KEY)

    def lm_studio_api_url(self) -> str:
        return self.resolve(ProviderKey.LM_STUDIO, ProviderField.API_URL)

    def lemonade_api_url(self) -> str:
        return self.resolve(ProviderKey.LEMONADE, ProviderField.API_URL)

    def lemonade_api_key(self) -> str:
        return self.resolve(ProviderKey.LEMONADE, ProviderField.API_KEY)

    def custom_openai_api_url(self) -> str:
        return self.resolve(ProviderKey.CUSTOM_OPENAI, ProviderField.API_URL)

    def custom_openai_api_key(self) -> str:
        return self.resolve(ProviderKey.CUSTOM_OPENAI, ProviderField.API_KEY)

    def custom_openai_model_name(self) -> str:
        return self.resolve(ProviderKey.CUSTOM_OPENAI, ProviderField.MODEL_NAME)

    def as_settings(self) -> ResolvedConfig:
        """Every form field, resolved."""
        return ResolvedConfig(
            **{
                key: self.resolve(provider, field)
                for key, (provider, field) in FORM_FIELDS.items()
            }
        )


# ═══════════════════════════════════════════════════════════
# Storage
# ═══════════════════════════════════════════════════════════


def merge_providers(
    stored: dict[str, Any], updates: dict[str, ProviderOverride]
) -> dict[str, Any]:
    """Merge provider overrides into stored ones, field by field.

    Fields that are None in `updates` are left as stored. Providers not
    mentioned (including ones we don't know) are kept untouched.
    """
    merged = {
        key: dict(value) if isinstance(value, dict) else value
        for key, value in (stored or {}).items()
    }
    for key, override in updates.items():
        current = merged.get(key)
        entry = dict(current) if isinstance(current, dict) else {}
        entry.update(override.model_dump(exclude_none=True))
        merged[key] = entry
    return merged


def form_to_update(form: ConfigForm) -> UserConfigUpdate:
    """Turn the flat settings form into a partial config update.

    The custom-OpenAI URL and key are mirrored into the legacy columns so
    older readers of those columns keep seeing the current values.
    """
    values = form.model_dump(exclude_none=True)
    providers: dict[str, dict[str, str]] = {}
    for key, value in values.items():
        provider, field = FORM_FIELDS[key]
        providers.setdefault(provider.value, {})[field.value] = value

    return UserConfigUpdate(
        providers={
            key: ProviderOverride(**fields) for key, fields in providers.items()
        },
        custom_openai_base_url=form.customOpenaiApiUrl,
        custom_openai_key=form.customOpenaiApiKey,
    )


class UserConfigService:
    """Reads and upserts user_configs rows."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_row(self, user_id: uuid.UUID) -> Optional[UserConfig]:
        result = await self.db.execute(
            select(UserConfig).where(UserConfig.user_id == user_id)
        )
        return result.scalars().first()

    async def get_user_config(self, user_id: uuid.UUID) -> UserConfigData:
        """The user's overrides; an empty config if they never saved any."""
        row = await self.get_row(user_id)
        if row is None:
            return UserConfigData()
        return UserConfigData(
            providers=row.providers or {},
            models=row.models or {},
            custom_openai_base_url=row.custom_openai_base_url,
            custom_openai_key=row.custom_openai_key,
        )

    async def update_user_config(
        self, user_id: uuid.UUID, update: UserConfigUpdate
    ) -> UserConfig:
        """Upsert: insert the row if missing, else merge into it.

        Learn: Omitted fields keep their stored value. `models` is
        replaced as a whole when given; `providers` merges per field
        (see merge_providers). If a concurrent request inserts the row
        first, the unique constraint on user_id fires and we retry as an
        update.
        """
        try:
            row = await self._apply(user_id, update)
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            row = await self._apply(user_id, update)
            await self.db.commit()

        logger.info(
            "user_config.updated",
            user_id=str(user_id),
            providers=sorted((update.providers or {}).keys()),
        )
        return row

    async def _apply(self, user_id: uuid.UUID, update: UserConfigUpdate) -> UserConfig:
        row = await self.get_row(user_id)
        if row is None:
            row = UserConfig(
                user_id=user_id,
                providers=merge_providers({}, update.providers or {}),
                models=dict(update.models or {}),
                custom_openai_base_url=update.custom_openai_base_url,
                custom_openai_key=update.custom_openai_key,
            )
            self.db.add(row)
        else:
            if update.providers is not None:
                row.providers = merge_providers(row.providers, update.providers)
            if update.models is not None:
                row.models = dict(update.models)
            if update.custom_openai_base_url is not None:
                row.custom_openai_base_url = update.custom_openai_base_url
            if update.custom_openai_key is not None:
                row.custom_openai_key = update.custom_openai_key
        await self.db.flush()
        return row


async def load_resolver(
    db: AsyncSession,
    user_id: uuid.UUID,
    defaults: Optional[ModelsConfig] = None,
) -> ConfigResolver:
    """Read the user's config once and wrap it in a resolver."""
    user_config = await UserConfigService(db).get_user_config(user_id)
    return ConfigResolver(user_config, defaults)
