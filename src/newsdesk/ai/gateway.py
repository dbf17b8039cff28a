from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

from ..services.key_store import stored_keys
from ..utils import log_event
from .dispatcher import DEFAULT_TIMEOUT_SECONDS, DispatchResult, dispatch
from .errors import (
    AIRoutingError,
    ConfigurationError,
    ProviderExhaustedError,
    UnauthorizedEndpointError,
)
from .guard import UNAUTHORIZED_ENDPOINT_MESSAGE, is_authorized_endpoint, resolve_endpoint
from .normalize import (
    as_chat_completion,
    as_gemini_text_payload,
    extract_chat_text,
    extract_text,
    to_chat_messages,
)
from .registry import ProviderId, get_provider, parse_provider_id
from .resolver import OPERATIONS, Attempt, resolve_attempts
from .transport import Transport

KIMI_TEMPERATURE = 0.7
KIMI_EMPTY_MESSAGE = "Kimi response did not include text output."

RESEARCH_SYSTEM_PROMPT = (
    "You are a research assistant. Provide a list of 5 current news topics or facts "
    "about the requested subject. Return ONLY a JSON array of objects with \"title\" "
    "and \"summary\" fields. No markdown wrappers."
)

logger = logging.getLogger("newsdesk.ai.gateway")


def research_prompt(query: str) -> str:
    return (
        f'Fetch and summarize 5 major news topics or articles regarding: "{query}". '
        'Return as a JSON array of objects with "title" and "summary" fields.'
    )


def generate_content(
    body: dict[str, Any],
    *,
    model_candidates: list[str] | None = None,
    caller_key: str | None = None,
    conn=None,
    transport: Transport | None = None,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> DispatchResult:
    attempts = resolve_attempts(
        "generate",
        caller_key,
        model_candidates,
        ProviderId.GEMINI,
        extra_keys=stored_keys(conn, ProviderId.GEMINI),
    )
    result = _generate(
        attempts,
        body,
        conn=conn,
        transport=transport,
        timeout_seconds=timeout_seconds,
    )
    if not result.ok:
        raise error_for(result)
    return result


def wants_image(body: Any) -> bool:
    if not isinstance(body, dict):
        return False
    generation = body.get("generationConfig")
    return bool(
        body.get("imageConfig")
        or (isinstance(generation, dict) and generation.get("imageConfig"))
    )


def kimi_fallback_attempts(body: Any, conn=None) -> list[Attempt]:
    if wants_image(body):
        return []
    return resolve_attempts(
        "generate",
        None,
        None,
        ProviderId.KIMI,
        extra_keys=stored_keys(conn, ProviderId.KIMI),
        endpoint=resolve_endpoint(ProviderId.KIMI),
    )


def _generate(
    attempts: list[Attempt],
    body: dict[str, Any],
    *,
    conn,
    transport: Transport | None,
    timeout_seconds: float,
) -> DispatchResult:
    """Gemini attempts first, then a single Kimi chat call for text-only requests.

    The Kimi reply is rewrapped as a Gemini candidate so callers keep using
    ``extract_text``. Attempt records from both legs share one trail.
    """
    result = dispatch(
        "generate",
        attempts,
        body,
        transport=transport,
        timeout_seconds=timeout_seconds,
        log=logger,
    )
    if result.ok:
        return result
    fallback = kimi_fallback_attempts(body, conn)
    if not fallback:
        return result

    log_event(
        logger,
        logging.INFO,
        "ai_kimi_fallback",
        gemini_status=result.status_code,
        tried=len(result.attempts),
    )
    chat = dispatch(
        "generate",
        fallback,
        {"messages": to_chat_messages(body), "temperature": KIMI_TEMPERATURE},
        transport=transport,
        timeout_seconds=timeout_seconds,
        log=logger,
    )
    records = [*result.attempts, *chat.attempts]
    if chat.ok:
        text = extract_chat_text(chat.payload)
        if text:
            return replace(chat, payload=as_gemini_text_payload(text), attempts=records)
        records[-1] = replace(records[-1], outcome="failure", error_detail=KIMI_EMPTY_MESSAGE)
        log_event(logger, logging.WARNING, "ai_kimi_empty", model=chat.model)
        return DispatchResult(ok=False, status_code=502, attempts=records, error=KIMI_EMPTY_MESSAGE)
    return DispatchResult(
        ok=False,
        status_code=502 if records else chat.status_code,
        attempts=records,
        error=chat.error,
    )


def error_for(result: DispatchResult) -> AIRoutingError:
    message = result.error or "request failed"
    if result.status_code == 400:
        return ConfigurationError(message, result.attempts)
    if result.status_code == 403:
        return UnauthorizedEndpointError(message, result.attempts)
    return ProviderExhaustedError(message, result.attempts)


def handle_gemini_request(
    payload: Any,
    *,
    conn=None,
    transport: Transport | None = None,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> tuple[int, dict[str, Any]]:
    if not isinstance(payload, dict):
        return 400, {"ok": False, "error": "Invalid payload."}
    operation = payload.get("operation") or "generate"
    if operation not in OPERATIONS:
        return 400, {"ok": False, "error": f"Unsupported operation: {operation}"}
    model_candidates = payload.get("modelCandidates")
    if model_candidates is not None and (
        not isinstance(model_candidates, list)
        or not all(isinstance(item, str) for item in model_candidates)
    ):
        return 400, {"ok": False, "error": "modelCandidates must be a list of strings"}
    body = payload.get("body")
    if operation == "generate" and not isinstance(body, dict):
        return 400, {"ok": False, "error": "Invalid payload."}
    api_key = payload.get("apiKey")
    if api_key is not None and not isinstance(api_key, str):
        return 400, {"ok": False, "error": "apiKey must be a string"}

    attempts = resolve_attempts(
        operation,
        api_key,
        model_candidates,
        ProviderId.GEMINI,
        extra_keys=stored_keys(conn, ProviderId.GEMINI),
    )
    if operation == "generate":
        result = _generate(
            attempts,
            body,
            conn=conn,
            transport=transport,
            timeout_seconds=timeout_seconds,
        )
    else:
        result = dispatch(
            operation,
            attempts,
            transport=transport,
            timeout_seconds=timeout_seconds,
            log=logger,
        )
    if operation == "validate":
        response: dict[str, Any] = {"ok": result.ok, "attempts": result.attempt_dicts()}
        if not result.ok:
            response["error"] = result.error
        else:
            response["model"] = result.model
            response["baseUrl"] = result.base_url
        return result.status_code, response
    if result.ok:
        return 200, {
            "ok": True,
            "payload": result.payload,
            "model": result.model,
            "baseUrl": result.base_url,
        }
    return result.status_code, {
        "ok": False,
        "error": result.error,
        "attempts": result.attempt_dicts(),
    }


def handle_proxy_research(
    payload: Any,
    *,
    conn=None,
    transport: Transport | None = None,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    research_model: str | None = None,
) -> tuple[int, dict[str, Any]]:
    if not isinstance(payload, dict):
        return 400, {"error": "Invalid payload."}
    provider_name = payload.get("provider")
    query = payload.get("query")
    model = payload.get("model") or None
    endpoint = payload.get("endpoint") or None
    log_event(
        logger,
        logging.INFO,
        "proxy_research_request",
        provider=provider_name,
        model=model,
        endpoint=endpoint,
    )

    if endpoint is not None and (
        not isinstance(endpoint, str) or not is_authorized_endpoint(endpoint, provider_name)
    ):
        return 403, {"error": UNAUTHORIZED_ENDPOINT_MESSAGE}
    if not isinstance(query, str) or not query.strip():
        return 400, {"error": "query is required"}

    provider_id = parse_provider_id(provider_name)
    if provider_id is ProviderId.GEMINI:
        return _proxy_gemini(
            query,
            model or research_model or get_provider(ProviderId.GEMINI).default_model,
            conn=conn,
            transport=transport,
            timeout_seconds=timeout_seconds,
        )

    try:
        target = resolve_endpoint(provider_name, endpoint)
    except AIRoutingError as exc:
        return exc.status_code, {"error": exc.message}
    attempts = []
    if provider_id is not None:
        attempts = resolve_attempts(
            "generate",
            None,
            [model] if model else None,
            provider_id,
            extra_keys=stored_keys(conn, provider_id),
            endpoint=target,
        )
    if not attempts:
        log_event(logger, logging.ERROR, "proxy_research_unconfigured", provider=provider_name)
        return 400, {"error": f"Configuration missing for provider: {provider_name}"}

    body = {
        "messages": [
            {"role": "system", "content": RESEARCH_SYSTEM_PROMPT},
            {"role": "user", "content": f"Research: {query}"},
        ],
        "temperature": 0.3,
    }
    result = dispatch(
        "generate",
        attempts,
        body,
        transport=transport,
        timeout_seconds=timeout_seconds,
        log=logger,
    )
    if not result.ok:
        return result.status_code, {
            "error": f"Provider API error: {result.error}",
            "attempts": result.attempt_dicts(),
        }
    return 200, result.payload


def _proxy_gemini(
    query: str,
    model: str,
    *,
    conn,
    transport: Transport | None,
    timeout_seconds: float,
) -> tuple[int, dict[str, Any]]:
    body = {
        "contents": [{"parts": [{"text": research_prompt(query)}]}],
        "tools": [{"googleSearch": {}}],
    }
    try:
        result = generate_content(
            body,
            model_candidates=[model],
            conn=conn,
            transport=transport,
            timeout_seconds=timeout_seconds,
        )
    except AIRoutingError as exc:
        return exc.status_code, {
            "error": exc.message,
            "attempts": [record.to_dict() for record in exc.attempts],
        }
    text = extract_text(result.payload) or "[]"
    return 200, as_chat_completion(text)
