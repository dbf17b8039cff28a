from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .registry import (
    DEFAULT_MODEL_CANDIDATES,
    GEMINI_API_BASES,
    ProviderConfig,
    ProviderId,
    get_provider,
    model_override,
    read_env_keys,
)

OPERATIONS = ("generate", "validate")


@dataclass(frozen=True)
class Attempt:
    provider: ProviderId
    key: str
    model: str
    base_url: str


def resolve_attempts(
    operation: str,
    caller_key: str | None = None,
    model_candidates: Iterable[str] | None = None,
    provider: str | ProviderId = ProviderId.GEMINI,
    extra_keys: Iterable[str] = (),
    endpoint: str | None = None,
) -> list[Attempt]:
    """Expand one logical request into the ordered candidates to try.

    Gemini fans out key (outer) x model x base URL (inner); ``validate`` only
    uses the first key. OpenAI-compatible providers get a single attempt
    against ``endpoint`` (already resolved by the guard) or the registry
    endpoint. Missing configuration yields an empty list.
    """
    if operation not in OPERATIONS:
        return []
    try:
        config = get_provider(provider)
    except ValueError:
        return []
    keys = candidate_keys(config, caller_key, extra_keys)
    if not keys:
        return []
    models = _clean_models(model_candidates)

    if config.id is ProviderId.GEMINI:
        models = models or list(DEFAULT_MODEL_CANDIDATES)
        if operation == "validate":
            keys = keys[:1]
        return [
            Attempt(provider=config.id, key=key, model=model, base_url=base_url)
            for key in keys
            for model in models
            for base_url in GEMINI_API_BASES
        ]

    base_url = endpoint or config.fixed_endpoint
    if not base_url:
        return []
    model = models[0] if models else model_override(config)
    return [Attempt(provider=config.id, key=keys[0], model=model, base_url=base_url)]


def candidate_keys(
    config: ProviderConfig,
    caller_key: str | None = None,
    extra_keys: Iterable[str] = (),
) -> list[str]:
    keys: list[str] = []
    for value in [caller_key, *read_env_keys(config), *extra_keys]:
        value = (value or "").strip()
        if value and value not in keys:
            keys.append(value)
    return keys


def _clean_models(model_candidates: Iterable[str] | None) -> list[str]:
    models: list[str] = []
    for model in model_candidates or []:
        model = str(model or "").strip()
        if model and model not in models:
            models.append(model)
    return models
