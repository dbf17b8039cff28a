from __future__ import annotations

import json
import logging
from typing import Any, Callable, Sequence

from jsonschema import Draft7Validator

from ..models import ResearchResult
from ..utils import log_event
from .gateway import handle_proxy_research
from .normalize import extract_chat_text, strip_code_fence
from .registry import RESEARCH_ROTATION, ProviderId, get_provider

ProxyCall = Callable[[dict[str, Any]], "tuple[int, dict[str, Any]]"]

RESEARCH_SCHEMA: dict[str, Any] = {
    "type": "array",
    "items": {
        "type": "object",
        "required": ["title", "summary"],
        "properties": {
            "title": {"type": "string"},
            "summary": {"type": "string"},
        },
    },
}

_VALIDATOR = Draft7Validator(RESEARCH_SCHEMA)

logger = logging.getLogger("newsdesk.ai.research")


class RotationState:
    """Round-robin cursor over research providers.

    The counter lives for the process lifetime only. Reads and increments are
    not locked, so concurrent callers may observe the same position.
    """

    def __init__(self, start: int = 0) -> None:
        self.counter = start

    def next_provider(self, providers: Sequence[ProviderId] = RESEARCH_ROTATION) -> ProviderId:
        if not providers:
            raise ValueError("providers must not be empty")
        current = self.counter
        self.counter = current + 1
        return providers[current % len(providers)]


ROTATION = RotationState()


def parse_research_content(content: str, source: str) -> list[ResearchResult]:
    text = strip_code_fence(content or "")
    if not text:
        return []
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        log_event(logger, logging.WARNING, "research_parse_failed", source=source)
        return []
    errors = list(_VALIDATOR.iter_errors(data))
    if errors:
        log_event(
            logger,
            logging.WARNING,
            "research_schema_invalid",
            source=source,
            error=errors[0].message,
        )
        return []
    return [
        ResearchResult(title=item["title"], summary=item["summary"], source=source)
        for item in data
    ]


def perform_research(
    query: str,
    *,
    rotation: RotationState = ROTATION,
    proxy: ProxyCall | None = None,
    providers: Sequence[ProviderId] = RESEARCH_ROTATION,
) -> list[ResearchResult]:
    call = proxy or handle_proxy_research
    provider = rotation.next_provider(providers)
    log_event(logger, logging.INFO, "research_start", provider=provider.value, query=query)
    results = _research_with(call, provider, query)
    if results is not None:
        return results
    if provider is ProviderId.GEMINI:
        return []
    log_event(logger, logging.WARNING, "research_fallback", provider=provider.value)
    return _research_with(call, ProviderId.GEMINI, query) or []


def _research_with(call: ProxyCall, provider: ProviderId, query: str) -> list[ResearchResult] | None:
    try:
        status, body = call({"provider": provider.value, "query": query})
    except Exception as exc:  # noqa: BLE001
        log_event(logger, logging.ERROR, "research_call_failed", provider=provider.value, error=str(exc))
        return None
    if status != 200:
        log_event(
            logger,
            logging.WARNING,
            "research_provider_error",
            provider=provider.value,
            status=status,
            error=(body or {}).get("error") if isinstance(body, dict) else None,
        )
        return None
    return parse_research_content(extract_chat_text(body), get_provider(provider).source_label)
