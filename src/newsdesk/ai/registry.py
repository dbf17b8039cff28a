from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum


class ProviderId(str, Enum):
    GEMINI = "GEMINI"
    KIMI = "KIMI"
    ZAI = "ZAI"
    ML = "ML"


@dataclass(frozen=True)
class ProviderConfig:
    id: ProviderId
    display_name: str
    fixed_endpoint: str | None
    key_env_names: tuple[str, ...]
    default_model: str
    source_label: str


GEMINI_API_BASES = (
    "https://generativelanguage.googleapis.com/v1",
    "https://generativelanguage.googleapis.com/v1beta",
)

DEFAULT_MODEL_CANDIDATES = ("gemini-2.0-flash", "gemini-2.5-flash", "gemini-2.5-pro")

PROVIDERS: dict[ProviderId, ProviderConfig] = {
    ProviderId.GEMINI: ProviderConfig(
        id=ProviderId.GEMINI,
        display_name="Google Gemini",
        fixed_endpoint=None,
        key_env_names=("GEMINI_API_KEY", "Gemini2_API_KEY", "API_KEY", "VITE_GEMINI_API_KEY"),
        default_model="gemini-3-flash-preview",
        source_label="Google Search via Gemini",
    ),
    ProviderId.KIMI: ProviderConfig(
        id=ProviderId.KIMI,
        display_name="Moonshot Kimi",
        fixed_endpoint="https://api.moonshot.cn/v1/chat/completions",
        key_env_names=("KIMI_API_KEY",),
        default_model="moonshot-v1-8k",
        source_label="Moonshot Kimi",
    ),
    ProviderId.ZAI: ProviderConfig(
        id=ProviderId.ZAI,
        display_name="Zhipu AI",
        fixed_endpoint="https://open.bigmodel.cn/api/paas/v4/chat/completions",
        key_env_names=("ZAI_API_KEY",),
        default_model="glm-4",
        source_label="Zhipu AI",
    ),
    ProviderId.ML: ProviderConfig(
        id=ProviderId.ML,
        display_name="AI/ML API",
        fixed_endpoint="https://api.aimlapi.com/chat/completions",
        key_env_names=("ML_API_KEY",),
        default_model="gpt-4o",
        source_label="AI/ML API",
    ),
}

# Order used by the research rotation.
RESEARCH_ROTATION = (ProviderId.GEMINI, ProviderId.KIMI, ProviderId.ZAI, ProviderId.ML)

_missing = [provider for provider in ProviderId if provider not in PROVIDERS]
if _missing:
    raise RuntimeError(f"provider registry incomplete: {_missing}")


def parse_provider_id(value: str | ProviderId | None) -> ProviderId | None:
    if value is None:
        return None
    if isinstance(value, ProviderId):
        return value
    try:
        return ProviderId(str(value).strip().upper())
    except ValueError:
        return None


def get_provider(provider_id: str | ProviderId) -> ProviderConfig:
    parsed = parse_provider_id(provider_id)
    if parsed is None:
        raise ValueError(f"unknown_provider: {provider_id}")
    return PROVIDERS[parsed]


def read_env_keys(provider: ProviderConfig) -> list[str]:
    keys: list[str] = []
    for name in provider.key_env_names:
        value = os.environ.get(name, "").strip()
        if value and value not in keys:
            keys.append(value)
    return keys


def model_override(provider: ProviderConfig) -> str:
    if provider.id is ProviderId.KIMI:
        return os.environ.get("KIMI_MODEL", "").strip() or provider.default_model
    return provider.default_model
