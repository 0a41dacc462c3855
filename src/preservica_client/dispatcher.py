"""Authenticated request sending with bounded retries.

Each logical call is an explicit attempt loop: fetch the current token, send,
classify the outcome, and either return, or back off and try again. A 401 or
403 clears the auth caches before the next attempt so that attempt logs in
again instead of reusing the rejected token.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from preservica_client.errors import ErrorCode, PreservicaClientError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from preservica_client.auth import AuthManager

log = structlog.get_logger()

ACCESS_TOKEN_HEADER = "Preservica-Access-Token"
XML_CONTENT_TYPE = "application/xml"
JSON_CONTENT_TYPE = "application/json;charset=UTF-8"

DEFAULT_MAX_RETRIES = 5
DEFAULT_BASE_DELAY_SECONDS = 1.0

_AUTH_FAILURE_STATUSES = frozenset({401, 403})


class RetryDecision(StrEnum):
    CONTINUE = "continue"
    STOP = "stop"


@dataclass(frozen=True)
class Classification:
    decision: RetryDecision
    invalidate_auth: bool = False


def classify(status_code: int | None) -> Classification:
    """Decide what to do after one attempt.

    ``None`` means the request never got a response (connection error or
    timeout).
    """
    if status_code is None:
        return Classification(RetryDecision.CONTINUE)
    if 200 <= status_code < 300:
        return Classification(RetryDecision.STOP)
    if status_code in _AUTH_FAILURE_STATUSES:
        return Classification(RetryDecision.CONTINUE, invalidate_auth=True)
    return Classification(RetryDecision.CONTINUE)


class RetryingDispatcher:
    """Sends requests with the access token header, retrying failures."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        auth: AuthManager,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay_seconds: float = DEFAULT_BASE_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must not be negative")
        self._client = http_client
        self._auth = auth
        self._sleep = sleep
        self.max_retries = max_retries
        self.base_delay_seconds = base_delay_seconds

    async def send(
        self,
        method: str,
        url: str,
        *,
        body: str | None = None,
        content_type: str = XML_CONTENT_TYPE,
        params: dict[str, Any] | None = None,
        timeout: float | httpx.Timeout | None = None,
    ) -> httpx.Response:
        """Send one logical request and return the first 2xx response.

        Raises PreservicaClientError carrying the last status code once
        ``max_retries + 1`` attempts have failed.
        """
        method = method.upper()
        total_attempts = self.max_retries + 1
        delay = self.base_delay_seconds
        cumulative_delay = 0.0
        attempt = 0

        while True:
            attempt += 1
            token = await self._auth.get_token()
            headers = {ACCESS_TOKEN_HEADER: token, "Content-Type": content_type}
            request_kwargs: dict[str, Any] = {"headers": headers, "params": params}
            if body is not None:
                request_kwargs["content"] = body.encode("utf-8")
            if timeout is not None:
                request_kwargs["timeout"] = timeout

            try:
                response = await self._client.request(method, url, **request_kwargs)
            except httpx.HTTPError as exc:
                log.warning(
                    "request_error", method=method, url=url, attempt=attempt, error=str(exc)
                )
                status_code = None
                error = PreservicaClientError(
                    f"Network error calling {url} with method {method}: {exc}",
                    code=ErrorCode.TRANSPORT_ERROR,
                    method=method,
                    url=url,
                )
            else:
                status_code = response.status_code
                log.debug("request_sent", method=method, url=url, status_code=status_code)
                if response.is_success:
                    return response
                error = PreservicaClientError.from_response(
                    method, url, status_code, response.text
                )

            classification = classify(status_code)
            if classification.invalidate_auth:
                await self._auth.invalidate_all()
            if classification.decision is RetryDecision.STOP or attempt == total_attempts:
                log.error(
                    "request_failed",
                    method=method,
                    url=url,
                    status_code=error.status_code,
                    attempts=attempt,
                )
                raise error

            cumulative_delay += delay
            log.warning(
                "request_retry",
                method=method,
                url=url,
                status_code=status_code,
                attempt=attempt,
                max_retries=self.max_retries,
                delay_seconds=delay,
                cumulative_delay_seconds=cumulative_delay,
            )
            await self._sleep(delay)
            delay *= 2
