from __future__ import annotations

import json
import socket
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Callable

from .errors import TransportError

USER_AGENT = "Newsdesk/0.1"


@dataclass(frozen=True)
class HttpResponse:
    status: int
    body: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        try:
            return json.loads(self.body)
        except json.JSONDecodeError as exc:
            raise TransportError(f"malformed_json: {exc.msg}") from exc


Transport = Callable[[str, dict[str, Any], dict[str, str], float], HttpResponse]


def post_json(
    url: str,
    payload: dict[str, Any],
    headers: dict[str, str],
    timeout_seconds: float,
) -> HttpResponse:
    data = json.dumps(payload).encode("utf-8")
    request = urllib.request.Request(url, data=data, method="POST")
    request.add_header("Content-Type", "application/json")
    request.add_header("User-Agent", USER_AGENT)
    for key, value in headers.items():
        request.add_header(key, value)
    try:
        with urllib.request.urlopen(request, timeout=timeout_seconds) as response:
            raw = response.read().decode("utf-8", errors="replace")
            return HttpResponse(status=response.status, body=raw)
    except urllib.error.HTTPError as exc:
        raw = exc.read().decode("utf-8", errors="ignore")
        return HttpResponse(status=exc.code, body=raw)
    except urllib.error.URLError as exc:
        if isinstance(exc.reason, (socket.timeout, TimeoutError)):
            raise TransportError(f"timeout after {timeout_seconds}s") from exc
        raise TransportError(f"network_error: {exc.reason}") from exc
    except (socket.timeout, TimeoutError) as exc:
        raise TransportError(f"timeout after {timeout_seconds}s") from exc
    except OSError as exc:
        raise TransportError(f"network_error: {exc}") from exc
