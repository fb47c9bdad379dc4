"""Google People API client (contact groups and connections).

The engine needs two reads:

- list_groups() -> list of contactGroup dicts ({resourceName, name, ...})
- list_connections(page_size, page_token) -> Page of person dicts restricted to
  emailAddresses and memberships

Notes
- contactGroups.list is issued once with the maximum page size. If the API
  still reports a further page, the extra groups are not fetched and a warning
  is logged, so the gap is visible rather than silently papered over.
- people.connections.list reports `totalItems` (older responses: `totalPeople`).

References:
- https://developers.google.com/people/api/rest/v1/contactGroups/list
- https://developers.google.com/people/api/rest/v1/people.connections/list
"""

from __future__ import annotations

import logging
from typing import Any

from ..sync.models import Page
from .base import GoogleApiClient

logger = logging.getLogger(__name__)

PEOPLE_API_URL = "https://people.googleapis.com/v1/"
MAX_GROUPS_PAGE_SIZE = 1000

DEFAULT_PERSON_FIELDS = ",".join(
    [
        "emailAddresses",
        "memberships",  # contact-group membership resolves the group
    ]
)


class PeopleClient(GoogleApiClient):
    def __init__(
        self,
        credentials: Any = None,
        *,
        person_fields: str = DEFAULT_PERSON_FIELDS,
        base_url: str = PEOPLE_API_URL,
        **kwargs: Any,
    ) -> None:
        super().__init__(base_url, credentials=credentials, **kwargs)
        self._person_fields = person_fields

    async def list_groups(self) -> list[dict[str, Any]]:
        resp = await self._call(
            "GET",
            "contactGroups",
            "contactGroups.list",
            params={"pageSize": MAX_GROUPS_PAGE_SIZE},
        )
        if resp.get("nextPageToken"):
            logger.warning(
                "contact-groups-truncated fetched=%d total=%s",
                len(resp.get("contactGroups") or []),
                resp.get("totalItems"),
            )
        return list(resp.get("contactGroups") or [])

    async def list_connections(self, page_size: int, page_token: str | None = None) -> Page:
        params: dict[str, str | int] = {
            "personFields": self._person_fields,
            "pageSize": page_size,
        }
        if page_token:
            params["pageToken"] = page_token
        resp = await self._call(
            "GET", "people/me/connections", "people.connections.list", params=params
        )
        total = resp.get("totalItems", resp.get("totalPeople"))
        return Page(
            items=list(resp.get("connections") or []),
            total=int(total) if total is not None else None,
            next_page_token=resp.get("nextPageToken") or None,
        )
