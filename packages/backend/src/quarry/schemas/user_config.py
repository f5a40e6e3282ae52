"""Pydantic schemas for per-user provider configuration.

Learn: Two views of the same data:
- UserConfigRead / UserConfigUpdate → the stored overrides, as-is
- ResolvedConfig / ConfigForm → the flat settings form the client edits,
  where every value is already resolved against global defaults
"""

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from quarry.providers import ProviderOverride


class UserConfigData(BaseModel):
    """A user's stored overrides. An absent row reads as the empty default."""

    providers: dict[str, ProviderOverride] = Field(default_factory=dict)
    models: dict[str, Any] = Field(default_factory=dict)
    custom_openai_base_url: Optional[str] = None
    custom_openai_key: Optional[str] = None


class UserConfigRead(UserConfigData):
    # Returned exactly as stored, unknown provider keys and fields included
    providers: dict[str, dict[str, Any]] = Field(default_factory=dict)

    id: Optional[uuid.UUID] = None
    user_id: uuid.UUID
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UserConfigUpdate(BaseModel):
    """Partial update. Omitted (None) fields keep their stored value.

    providers merge per provider and per field, so sending
    {"OPENAI": {"API_KEY": "sk-..."}} leaves every other stored value alone.
    An empty string clears a field (it then falls back to the global value).
    """

    providers: Optional[dict[str, ProviderOverride]] = None
    models: Optional[dict[str, Any]] = None
    custom_openai_base_url: Optional[str] = None
    custom_openai_key: Optional[str] = None


class ResolvedConfig(BaseModel):
    """Effective provider settings for one user (GET /config)."""

    openaiApiKey: str
    groqApiKey: str
    anthropicApiKey: str
    geminiApiKey: str
    ollamaApiUrl: str
    ollamaApiKey: str
    deepseekApiKey: str
    aimlApiKey: str
    lmStudioApiUrl: str
    lemonadeApiUrl: str
    lemonadeApiKey: str
    customOpenaiApiUrl: str
    customOpenaiApiKey: str
    customOpenaiModelName: str


class ConfigForm(BaseModel):
    """Settings form posted by the client (POST /config). All optional."""

    openaiApiKey: Optional[str] = None
    groqApiKey: Optional[str] = None
    anthropicApiKey: Optional[str] = None
    geminiApiKey: Optional[str] = None
    ollamaApiUrl: Optional[str] = None
    ollamaApiKey: Optional[str] = None
    deepseekApiKey: Optional[str] = None
    aimlApiKey: Optional[str] = None
    lmStudioApiUrl: Optional[str] = None
    lemonadeApiUrl: Optional[str] = None
    lemonadeApiKey: Optional[str] = None
    customOpenaiApiUrl: Optional[str] = None
    customOpenaiApiKey: Optional[str] = None
    customOpenaiModelName: Optional[str] = None

    model_config = ConfigDict(extra="ignore")
