"""Model provider identifiers and their credential records.

Learn: Every downstream model provider is configured by the same three
fields — API_KEY, API_URL, MODEL_NAME. Not every provider uses all three
(OpenAI only needs a key, LM Studio only a URL), but keeping one shape
means the resolver can treat them uniformly.

The same shape is used twice:
- ProviderDefaults → global values from env vars (lowest priority)
- ProviderOverride → per-user values stored in user_configs.providers
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ProviderKey(str, Enum):
    """Closed set of providers the resolver knows how to resolve."""

    OPENAI = "OPENAI"
    GROQ = "GROQ"
    ANTHROPIC = "ANTHROPIC"
    GEMINI = "GEMINI"
    OLLAMA = "OLLAMA"
    DEEPSEEK = "DEEPSEEK"
    AIMLAPI = "AIMLAPI"
    LM_STUDIO = "LM_STUDIO"
    LEMONADE = "LEMONADE"
    CUSTOM_OPENAI = "CUSTOM_OPENAI"


class ProviderField(str, Enum):
    API_KEY = "API_KEY"
    API_URL = "API_URL"
    MODEL_NAME = "MODEL_NAME"


class ProviderDefaults(BaseModel):
    """Global (env-configured) credentials for one provider."""

    API_KEY: str = ""
    API_URL: str = ""
    MODEL_NAME: str = ""


class ProviderOverride(BaseModel):
    """A user's override for one provider. Unset fields inherit."""

    API_KEY: Optional[str] = None
    API_URL: Optional[str] = None
    MODEL_NAME: Optional[str] = None

    # Extra keys a client stored are kept round-trip, never resolved
    model_config = ConfigDict(extra="allow")


class ModelsConfig(BaseModel):
    """Global provider defaults.

    Learn: Loaded through Settings with the nested delimiter, e.g.
    QUARRY_MODELS__OLLAMA__API_URL=http://localhost:11434
    """

    OPENAI: ProviderDefaults = ProviderDefaults()
    GROQ: ProviderDefaults = ProviderDefaults()
    ANTHROPIC: ProviderDefaults = ProviderDefaults()
    GEMINI: ProviderDefaults = ProviderDefaults()
    OLLAMA: ProviderDefaults = ProviderDefaults()
    DEEPSEEK: ProviderDefaults = ProviderDefaults()
    AIMLAPI: ProviderDefaults = ProviderDefaults()
    LM_STUDIO: ProviderDefaults = ProviderDefaults()
    LEMONADE: ProviderDefaults = ProviderDefaults()
    CUSTOM_OPENAI: ProviderDefaults = ProviderDefaults()

    def get(self, provider: ProviderKey) -> ProviderDefaults:
        return getattr(self, provider.value)
