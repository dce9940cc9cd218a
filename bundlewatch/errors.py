"""Error taxonomy for the catalog audit."""

from __future__ import annotations

import httpx


class ConfigurationError(RuntimeError):
    """Required credentials or ids are missing."""


class LockContention(RuntimeError):
    """Another sweep currently holds the run lock."""


class APIError(RuntimeError):
    def __init__(self, status_code: int, body: str, *, service: str = "api") -> None:
        super().__init__(f"{service} error: {status_code} - {body}")
        self.status_code = status_code
        self.body = body
        self.service = service


class TransientAPIError(APIError):
    """Rate-limited or 5xx response."""


class PermanentAPIError(APIError):
    """4xx response other than a rate limit."""


class SubscriberNotificationError(RuntimeError):
    def __init__(self, step: str, email: str | None, cause: Exception) -> None:
        super().__init__(f"{step} failed for {email or '(unknown)'}: {cause}")
        self.step = step
        self.email = email
        self.cause = cause


def raise_for_api_status(response: httpx.Response, *, service: str = "api") -> None:
    if response.is_success:
        return
    status = response.status_code
    if status == 429 or status >= 500:
        raise TransientAPIError(status, response.text, service=service)
    raise PermanentAPIError(status, response.text, service=service)


class SweepTimeout(RuntimeError):
    """The sweep exceeded its wall-clock budget."""
