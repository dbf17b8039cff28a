from __future__ import annotations

import logging
import os
from urllib.parse import urlsplit

from ..utils import log_event
from .errors import ConfigurationError, UnauthorizedEndpointError
from .registry import ProviderId, get_provider, parse_provider_id

ALLOWED_ENDPOINT_HOSTS = frozenset(
    {
        "api.moonshot.cn",
        "open.bigmodel.cn",
        "api.aimlapi.com",
        "generativelanguage.googleapis.com",
    }
)

UNAUTHORIZED_ENDPOINT_MESSAGE = "Unauthorized endpoint provided"

logger = logging.getLogger("newsdesk.ai.guard")


def is_authorized_endpoint(target_url: str | None, provider: str | ProviderId | None = None) -> bool:
    if not target_url:
        return True
    host = endpoint_host(target_url)
    if host is None or host not in ALLOWED_ENDPOINT_HOSTS:
        log_event(
            logger,
            logging.WARNING,
            "endpoint_rejected",
            provider=_provider_label(provider),
            host=host or "invalid",
        )
        return False
    return True


def endpoint_host(target_url: str) -> str | None:
    try:
        parsed = urlsplit(str(target_url).strip())
        port = parsed.port
    except ValueError:
        return None
    if parsed.scheme.lower() != "https":
        return None
    if parsed.username or parsed.password:
        return None
    if port not in (None, 443):
        return None
    if not parsed.hostname:
        return None
    return parsed.hostname.lower().rstrip(".")


def resolve_endpoint(provider: str | ProviderId | None, override: str | None = None) -> str:
    if override and not is_authorized_endpoint(override, provider):
        raise UnauthorizedEndpointError(UNAUTHORIZED_ENDPOINT_MESSAGE)
    provider_id = parse_provider_id(provider)
    if provider_id is not None:
        config = get_provider(provider_id)
        if config.fixed_endpoint:
            return _env_endpoint(provider_id) or config.fixed_endpoint
    if override:
        return override
    raise ConfigurationError(f"Unknown provider endpoint: {_provider_label(provider)}")


def _env_endpoint(provider_id: ProviderId) -> str | None:
    if provider_id is not ProviderId.KIMI:
        return None
    value = os.environ.get("KIMI_BASE_URL", "").strip()
    if value and is_authorized_endpoint(value, provider_id):
        return value
    return None


def _provider_label(provider: str | ProviderId | None) -> str:
    if isinstance(provider, ProviderId):
        return provider.value
    return str(provider or "unknown")
