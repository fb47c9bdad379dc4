"""In-memory stand-ins for the People and Gmail APIs used across the test suite."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from typing import Any

import pytest

from grouplabels.errors import NotFoundError
from grouplabels.sync.models import Page

MARK = "⭕ "


def person(*emails: str | None, groups: tuple[str, ...] = (), domain: bool = False) -> dict[str, Any]:
    """Build a People API connection payload."""
    memberships: list[dict[str, Any]] = [
        {"contactGroupMembership": {"contactGroupResourceName": g}} for g in groups
    ]
    if domain:
        memberships.append({"domainMembership": {"inViewerDomain": True}})
    p: dict[str, Any] = {"resourceName": f"people/c{id(memberships)}", "memberships": memberships}
    if emails:
        p["emailAddresses"] = [{"value": e} if e is not None else {} for e in emails]
    return p


class FakeDirectory:
    def __init__(
        self,
        groups: list[dict[str, Any]] | None = None,
        people: list[dict[str, Any]] | None = None,
    ) -> None:
        self.groups = list(groups or [])
        self.people = list(people or [])
        self.page_calls: list[tuple[int, str | None]] = []

    def add_group(self, resource_name: str, name: str) -> None:
        self.groups.append({"resourceName": resource_name, "name": name})

    async def list_groups(self) -> list[dict[str, Any]]:
        await asyncio.sleep(0)
        return [dict(g) for g in self.groups]

    async def list_connections(self, page_size: int, page_token: str | None = None) -> Page:
        await asyncio.sleep(0)
        self.page_calls.append((page_size, page_token))
        start = int(page_token or 0)
        end = start + page_size
        return Page(
            items=self.people[start:end],
            total=len(self.people),
            next_page_token=str(end) if end < len(self.people) else None,
        )


class FakeMailbox:
    """Gmail labels + filters with an ordered log of every mutation."""

    def __init__(self) -> None:
        self.labels: dict[str, str] = {"INBOX": "INBOX", "SPAM": "SPAM"}  # id -> name
        self.filters: dict[str, dict[str, Any]] = {}
        self.events: list[tuple[str, str]] = []
        self.in_flight_creates = 0
        self.max_concurrent_creates = 0
        self.before_delete: Callable[[str], None] | None = None
        self._seq = 0

    def _next(self, prefix: str) -> str:
        self._seq += 1
        return f"{prefix}{self._seq}"

    def add_label(self, name: str) -> str:
        label_id = self._next("Label_")
        self.labels[label_id] = name
        return label_id

    def add_filter(self, payload: Mapping[str, Any]) -> str:
        filter_id = self._next("F")
        self.filters[filter_id] = {**payload, "id": filter_id}
        return filter_id

    def label_id(self, name: str) -> str:
        ids = [lid for lid, n in self.labels.items() if n == name]
        assert len(ids) == 1, f"expected exactly one label {name!r}, found {ids}"
        return ids[0]

    def filters_for(self, label_id: str) -> list[dict[str, Any]]:
        return [f for f in self.filters.values() if label_id in f["action"].get("addLabelIds", [])]

    def filter_content(self) -> list[tuple[str, tuple[str, ...], tuple[str, ...]]]:
        return sorted(
            (
                f["criteria"]["from"],
                tuple(f["action"]["addLabelIds"]),
                tuple(f["action"]["removeLabelIds"]),
            )
            for f in self.filters.values()
        )

    async def list_labels(self) -> list[dict[str, Any]]:
        await asyncio.sleep(0)
        return [{"id": lid, "name": name} for lid, name in self.labels.items()]

    async def create_label(self, name: str) -> dict[str, Any]:
        await asyncio.sleep(0)
        label_id = self.add_label(name)
        self.events.append(("create_label", name))
        return {"id": label_id, "name": name}

    async def list_filters(self) -> list[dict[str, Any]]:
        await asyncio.sleep(0)
        return [dict(f) for f in self.filters.values()]

    async def delete_filter(self, filter_id: str) -> None:
        if self.before_delete:
            self.before_delete(filter_id)
        await asyncio.sleep(0)
        if filter_id not in self.filters:
            raise NotFoundError(f"filters.delete {filter_id}: not found")
        del self.filters[filter_id]
        self.events.append(("delete_filter", filter_id))

    async def create_filter(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        self.in_flight_creates += 1
        self.max_concurrent_creates = max(self.max_concurrent_creates, self.in_flight_creates)
        try:
            await asyncio.sleep(0)
            filter_id = self.add_filter(payload)
            self.events.append(("create_filter", filter_id))
            return {**payload, "id": filter_id}
        finally:
            self.in_flight_creates -= 1


@pytest.fixture
def directory() -> FakeDirectory:
    return FakeDirectory()


@pytest.fixture
def mailbox() -> FakeMailbox:
    return FakeMailbox()
