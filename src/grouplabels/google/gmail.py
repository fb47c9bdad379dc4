"""Gmail API client for labels and settings filters.

Operations
- list_labels() / create_label(name)
- list_filters() / delete_filter(id) / create_filter(payload)

Gmail has no filter update; callers delete and recreate. delete_filter raises
NotFoundError (HTTP 404) when the filter no longer exists.

References:
- https://developers.google.com/gmail/api/reference/rest/v1/users.labels
- https://developers.google.com/gmail/api/reference/rest/v1/users.settings.filters
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from .base import GoogleApiClient

GMAIL_API_URL = "https://gmail.googleapis.com/gmail/v1/users/"


class GmailClient(GoogleApiClient):
    def __init__(
        self,
        credentials: Any = None,
        *,
        user_id: str = "me",
        base_url: str = GMAIL_API_URL,
        **kwargs: Any,
    ) -> None:
        super().__init__(f"{base_url.rstrip('/')}/{user_id}/", credentials=credentials, **kwargs)
        self.user_id = user_id

    async def list_labels(self) -> list[dict[str, Any]]:
        resp = await self._call("GET", "labels", "labels.list")
        return list(resp.get("labels") or [])

    async def create_label(self, name: str) -> dict[str, Any]:
        return await self._call("POST", "labels", "labels.create", json={"name": name})

    async def list_filters(self) -> list[dict[str, Any]]:
        resp = await self._call("GET", "settings/filters", "filters.list")
        # An account without filters returns {} rather than {"filter": []}
        return list(resp.get("filter") or [])

    async def delete_filter(self, filter_id: str) -> None:
        await self._call("DELETE", f"settings/filters/{filter_id}", f"filters.delete {filter_id}")

    async def create_filter(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        return await self._call("POST", "settings/filters", "filters.create", json=dict(payload))
