"""Async HTTP client with retries and per-request deadlines."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from types import TracebackType
from typing import Any

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from routemap.common.constants import LOOKUP_TIMEOUT_SECONDS, USER_AGENT
from routemap.common.errors import RoutemapError

RETRYABLE_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}


@dataclass(frozen=True)
class TimeoutConfig:
    total: float = LOOKUP_TIMEOUT_SECONDS
    connect: float | None = None


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 2
    multiplier: float = 0.5
    max_wait: float = 4.0


class HttpRequestError(RoutemapError):
    error_code = "HTTP_ERROR"


class RetryableHttpError(HttpRequestError):
    pass


class HttpTimeoutError(HttpRequestError):
    error_code = "HTTP_TIMEOUT"


class HttpClient:
    def __init__(
        self,
        *,
        timeout: TimeoutConfig | None = None,
        retry: RetryConfig | None = None,
        user_agent: str = USER_AGENT,
        session: httpx.AsyncClient | None = None,
    ) -> None:
        self.timeout = timeout or TimeoutConfig()
        self.retry = retry or RetryConfig()
        self.user_agent = user_agent
        self.session = session or httpx.AsyncClient(follow_redirects=True)

    async def close(self) -> None:
        await self.session.aclose()

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    def _headers(self, headers: dict[str, str] | None) -> dict[str, str]:
        out = {"User-Agent": self.user_agent, "Accept": "application/json"}
        if headers:
            out.update(headers)
        return out

    def _raise_for_status_or_retry(self, response: httpx.Response) -> None:
        status = response.status_code
        if status in RETRYABLE_STATUS_CODES:
            raise RetryableHttpError(f"Retryable HTTP status: {status}")
        if status >= 400:
            raise HttpRequestError(f"HTTP status: {status}")

    async def _request_json(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
    ) -> Any:
        req_timeout = timeout or self.timeout
        try:
            response = await asyncio.wait_for(
                self.session.request(
                    method,
                    url,
                    params=params,
                    headers=self._headers(headers),
                    timeout=httpx.Timeout(req_timeout.total, connect=req_timeout.connect or req_timeout.total),
                ),
                timeout=req_timeout.total,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise HttpTimeoutError(f"Request to {url} exceeded {req_timeout.total}s") from exc
        except httpx.TransportError as exc:
            raise HttpRequestError(f"Transport failure for {url}: {exc}") from exc

        self._raise_for_status_or_retry(response)

        try:
            return response.json()
        except ValueError as exc:
            raise HttpRequestError(f"Invalid JSON payload from {url}") from exc

    async def request_json(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
    ) -> Any:
        @retry(
            stop=stop_after_attempt(self.retry.max_attempts),
            wait=wait_exponential_jitter(
                initial=self.retry.multiplier,
                max=self.retry.max_wait,
                jitter=self.retry.multiplier,
            ),
            retry=retry_if_exception_type(RetryableHttpError),
            reraise=True,
        )
        async def _wrapped() -> Any:
            return await self._request_json(
                method,
                url,
                params=params,
                headers=headers,
                timeout=timeout,
            )

        return await _wrapped()

    async def get_json(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
    ) -> Any:
        return await self.request_json(
            "GET",
            url,
            params=params,
            headers=headers,
            timeout=timeout,
        )
