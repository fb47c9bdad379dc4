"""Shared plumbing for the Google REST clients (People, Gmail)."""

from __future__ import annotations

from collections.abc import Mapping
from types import TracebackType
from typing import Any

import httpx

from ..errors import TransportError
from ..utils.http import RetryConfig, create_client, raise_for_api_status, request_with_retries


class GoogleApiClient:
    def __init__(
        self,
        base_url: str,
        *,
        credentials: Any = None,
        auth: httpx.Auth | None = None,
        timeout: float = 30.0,
        retry: RetryConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if auth is None and credentials is not None:
            from .auth import GoogleBearerAuth

            auth = GoogleBearerAuth(credentials)
        self.retry = retry or RetryConfig()
        self.client = create_client(
            base_url=base_url, auth=auth, timeout=timeout, transport=transport
        )

    async def _call(
        self,
        method: str,
        path: str,
        what: str,
        *,
        params: Mapping[str, str | int] | None = None,
        json: object | None = None,
    ) -> dict[str, Any]:
        try:
            resp = await request_with_retries(
                self.client, method, path, params=params, json=json, retry=self.retry
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"{what}: {type(exc).__name__}: {exc}") from exc
        raise_for_api_status(resp, what)
        if not resp.content:
            return {}
        return resp.json()

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> GoogleApiClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
