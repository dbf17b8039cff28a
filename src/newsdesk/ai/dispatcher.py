from __future__ import annotations

import logging
import urllib.parse
from dataclasses import asdict, dataclass, field
from typing import Any

from ..utils import log_event, mask_secret
from .guard import UNAUTHORIZED_ENDPOINT_MESSAGE, is_authorized_endpoint
from .registry import ProviderId
from .resolver import Attempt
from .transport import Transport, post_json

DEFAULT_TIMEOUT_SECONDS = 30
RATE_LIMIT_STATUS = 429
MAX_DETAIL_CHARS = 500
NO_KEYS_MESSAGE = "no keys configured"

PING_BODY: dict[str, Any] = {"contents": [{"parts": [{"text": "ping"}]}]}

logger = logging.getLogger("newsdesk.ai.dispatcher")


@dataclass(frozen=True)
class AttemptRecord:
    provider: str
    model: str
    base_url: str
    outcome: str
    http_status: int | None = None
    error_detail: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class DispatchResult:
    ok: bool
    status_code: int
    payload: Any = None
    model: str | None = None
    base_url: str | None = None
    attempts: list[AttemptRecord] = field(default_factory=list)
    error: str | None = None

    def attempt_dicts(self) -> list[dict[str, Any]]:
        return [record.to_dict() for record in self.attempts]


def filter_authorized(attempts: list[Attempt]) -> list[Attempt]:
    verdicts: dict[tuple[str, ProviderId], bool] = {}
    allowed: list[Attempt] = []
    for attempt in attempts:
        pair = (attempt.base_url, attempt.provider)
        if pair not in verdicts:
            verdicts[pair] = is_authorized_endpoint(attempt.base_url, attempt.provider)
        if verdicts[pair]:
            allowed.append(attempt)
    return allowed


def build_request(
    attempt: Attempt,
    operation: str,
    body: dict[str, Any] | None,
) -> tuple[str, dict[str, Any], dict[str, str]]:
    if attempt.provider is ProviderId.GEMINI:
        url = (
            f"{attempt.base_url.rstrip('/')}/models/"
            f"{urllib.parse.quote(attempt.model)}:generateContent"
            f"?key={urllib.parse.quote(attempt.key, safe='')}"
        )
        payload = PING_BODY if operation == "validate" or body is None else body
        return url, payload, {}
    if operation == "validate" or body is None:
        payload = {
            "model": attempt.model,
            "messages": [{"role": "user", "content": "ping"}],
            "max_tokens": 1,
        }
    else:
        payload = {**body, "model": attempt.model}
    return attempt.base_url, payload, {"Authorization": f"Bearer {attempt.key}"}


def dispatch(
    operation: str,
    attempts: list[Attempt],
    body: dict[str, Any] | None = None,
    *,
    transport: Transport | None = None,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    log: logging.Logger | None = None,
) -> DispatchResult:
    log = log or logger
    if not attempts:
        return DispatchResult(ok=False, status_code=400, error=NO_KEYS_MESSAGE)
    authorized = filter_authorized(attempts)
    if not authorized:
        return DispatchResult(ok=False, status_code=403, error=UNAUTHORIZED_ENDPOINT_MESSAGE)

    send = transport or post_json
    records: list[AttemptRecord] = []
    rate_limited: set[tuple[str, str]] = set()
    last_error: str | None = None

    for attempt in authorized:
        if (attempt.key, attempt.model) in rate_limited:
            continue
        url, payload, headers = build_request(attempt, operation, body)
        try:
            response = send(url, payload, headers, timeout_seconds)
            data = response.json() if response.ok else None
        except Exception as exc:  # noqa: BLE001
            last_error = f"{attempt.model} at {attempt.base_url}: {exc}"
            records.append(_failure(attempt, None, str(exc)))
            log_event(
                log,
                logging.WARNING,
                "ai_attempt_error",
                provider=attempt.provider.value,
                model=attempt.model,
                base_url=attempt.base_url,
                key=mask_secret(attempt.key),
                error=str(exc),
            )
            continue

        if not response.ok:
            detail = response.body[:MAX_DETAIL_CHARS]
            last_error = (
                f"request failed ({response.status}) on {attempt.base_url} "
                f"using {attempt.model}: {detail}"
            )
            records.append(_failure(attempt, response.status, detail))
            log_event(
                log,
                logging.WARNING,
                "ai_attempt_failed",
                provider=attempt.provider.value,
                model=attempt.model,
                base_url=attempt.base_url,
                key=mask_secret(attempt.key),
                status=response.status,
            )
            if response.status == RATE_LIMIT_STATUS:
                rate_limited.add((attempt.key, attempt.model))
            continue

        records.append(
            AttemptRecord(
                provider=attempt.provider.value,
                model=attempt.model,
                base_url=attempt.base_url,
                outcome="success",
                http_status=response.status,
            )
        )
        log_event(
            log,
            logging.INFO,
            "ai_attempt_succeeded",
            operation=operation,
            provider=attempt.provider.value,
            model=attempt.model,
            base_url=attempt.base_url,
            tried=len(records),
        )
        return DispatchResult(
            ok=True,
            status_code=200,
            payload=data,
            model=attempt.model,
            base_url=attempt.base_url,
            attempts=records,
        )

    log_event(log, logging.ERROR, "ai_dispatch_exhausted", operation=operation, tried=len(records))
    return DispatchResult(
        ok=False,
        status_code=502,
        attempts=records,
        error=last_error or "all provider attempts failed",
    )


def _failure(attempt: Attempt, status: int | None, detail: str) -> AttemptRecord:
    return AttemptRecord(
        provider=attempt.provider.value,
        model=attempt.model,
        base_url=attempt.base_url,
        outcome="failure",
        http_status=status,
        error_detail=detail,
    )
