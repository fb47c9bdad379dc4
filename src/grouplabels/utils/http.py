"""Async HTTP utilities and a small retry wrapper built on httpx.

Intended use:
- Provide a single place for timeouts, retries, backoff, and User-Agent.
- Translate HTTP failures into the TransportError / NotFoundError taxonomy.

Notes:
- POST is not retried by default: label and filter creation are not idempotent,
  and replaying a create after a lost response would duplicate the resource.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Iterable, Mapping, MutableMapping
from dataclasses import dataclass

import httpx

from ..errors import NotFoundError, TransportError

log = logging.getLogger(__name__)

__all__ = [
    "RetryConfig",
    "create_client",
    "raise_for_api_status",
    "request_with_retries",
]


@dataclass(frozen=True)
class RetryConfig:
    max_retries: int = 5
    backoff_initial_sec: float = 1.0
    backoff_factor: float = 2.0
    jitter_frac: float = 0.2  # +/- 20%
    status_forcelist: tuple[int, ...] = (429, 500, 502, 503, 504)
    methods: tuple[str, ...] = ("GET", "PUT", "DELETE", "HEAD", "OPTIONS")


def _user_agent() -> str:
    return "grouplabels/0.1"


def create_client(
    base_url: str | None = None,
    auth: httpx.Auth | None = None,
    timeout: float = 30.0,
    headers: Mapping[str, str] | None = None,
    limits: httpx.Limits | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create a configured async httpx client.

    `transport` is only meant for tests (httpx.MockTransport).
    """
    base_headers: MutableMapping[str, str] = {
        "User-Agent": _user_agent(),
        "Accept": "application/json",
    }
    if headers:
        base_headers.update(headers)
    # Conservative defaults; label creation and filter deletion fan out
    conn_limits = limits or httpx.Limits(max_keepalive_connections=10, max_connections=20)
    kwargs: dict[str, object] = {
        "auth": auth,
        "timeout": timeout,
        "headers": base_headers,
        "limits": conn_limits,
    }
    if base_url is not None:
        kwargs["base_url"] = base_url
    if transport is not None:
        kwargs["transport"] = transport
    return httpx.AsyncClient(**kwargs)  # type: ignore[arg-type]


def _should_retry(
    method: str,
    status_code: int | None,
    exc: Exception | None,
    retry: RetryConfig,
) -> bool:
    if method.upper() not in retry.methods:
        return False
    if exc is not None:
        # Network/transport errors are retryable
        return True
    if status_code is None:
        return False
    return status_code in retry.status_forcelist


def _backoff_delay(attempt: int, retry: RetryConfig) -> float:
    # attempt starts at 1
    base = retry.backoff_initial_sec * (retry.backoff_factor ** (attempt - 1))
    jitter = base * retry.jitter_frac
    return max(0.0, base + random.uniform(-jitter, jitter))


async def _sleep_backoff(attempt: int, retry: RetryConfig) -> None:
    delay = _backoff_delay(attempt, retry)
    if delay > 0:
        await asyncio.sleep(delay)


async def request_with_retries(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    params: Mapping[str, str | int] | None = None,
    json: object | None = None,
    retry: RetryConfig | None = None,
    expected: Iterable[int] = (200, 201, 204),
) -> httpx.Response:
    """Perform an HTTP request with retries on transient errors.

    Returns the last response when retries are exhausted; raises the last
    httpx error when the final attempt failed without a response.
    """
    cfg = retry or RetryConfig()
    expected = tuple(expected)
    attempts = max(1, cfg.max_retries)
    last_exc: httpx.HTTPError | None = None
    resp: httpx.Response | None = None

    for attempt in range(1, attempts + 1):
        try:
            resp = await client.request(method, url, params=params, json=json)
            if resp.status_code in expected:
                return resp
            if not _should_retry(method, resp.status_code, None, cfg):
                return resp
            log.debug("http-retry method=%s url=%s status=%s", method, url, resp.status_code)
        except httpx.HTTPError as exc:
            # The latest failure wins over an earlier retryable response
            resp = None
            last_exc = exc
            if not _should_retry(method, None, exc, cfg):
                raise
            log.debug("http-retry method=%s url=%s err=%s", method, url, exc)

        if attempt < attempts:
            await _sleep_backoff(attempt, cfg)

    if resp is not None:
        return resp
    assert last_exc is not None
    raise last_exc


def raise_for_api_status(resp: httpx.Response, what: str) -> None:
    """Map non-2xx responses onto NotFoundError / TransportError."""
    if resp.status_code < 400:
        return
    if resp.status_code == 404:
        raise NotFoundError(f"{what}: not found")
    raise TransportError(
        f"{what}: HTTP {resp.status_code} {_error_message(resp)}",
        status_code=resp.status_code,
    )


def _error_message(resp: httpx.Response) -> str:
    # Google APIs wrap failures as {"error": {"code", "message", "status"}}
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    err = body.get("error") if isinstance(body, dict) else None
    if isinstance(err, dict):
        return str(err.get("message") or err.get("status") or "")
    return str(err or "")
