from __future__ import annotations

from typing import Any


class AIRoutingError(Exception):
    status_code = 500

    def __init__(self, message: str, attempts: list[Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.attempts = list(attempts or [])


class ConfigurationError(AIRoutingError):
    status_code = 400


class UnauthorizedEndpointError(AIRoutingError):
    status_code = 403


class ProviderExhaustedError(AIRoutingError):
    status_code = 502


class TransportError(RuntimeError):
    pass
