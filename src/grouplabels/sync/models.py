"""Per-run value objects and the collaborator protocols the engine talks to.

Everything here is rebuilt on every run from the two remote systems and is
immutable once built: phases hand indices to each other by parameter, and an
index that gains an entry is replaced, not mutated.

Wire shapes stay as the Google APIs return them (plain dicts) at the collaborator
boundary, the same way the People API person payload travels through the
contacts code.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Protocol

__all__ = [
    "DirectoryService",
    "FilterSpec",
    "GroupIndex",
    "LabelIndex",
    "MailService",
    "ManagedFilter",
    "ManagedGroup",
    "Page",
    "SyncResult",
    "build_from_criterion",
    "label_ids",
]


@dataclass(frozen=True)
class Page:
    """One page of a cursor-paged listing."""

    items: list[dict[str, Any]]
    total: int | None = None
    next_page_token: str | None = None


@dataclass(frozen=True)
class ManagedGroup:
    resource_name: str  # contactGroups/xxxx
    name: str
    emails: tuple[str, ...] = ()


@dataclass(frozen=True)
class GroupIndex:
    """Managed groups in discovery order plus O(1) lookups both ways."""

    groups: tuple[ManagedGroup, ...] = ()
    by_name: Mapping[str, ManagedGroup] = field(default_factory=dict)
    name_by_resource: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def build(
        cls, groups: Iterable[ManagedGroup], aliases: Mapping[str, str] | None = None
    ) -> GroupIndex:
        """Build an index; `aliases` maps extra resource names onto existing group names."""
        ordered = tuple(groups)
        by_name = {g.name: g for g in ordered}
        name_by_resource = {g.resource_name: g.name for g in ordered}
        if aliases:
            name_by_resource.update(aliases)
        return cls(
            groups=ordered,
            by_name=MappingProxyType(by_name),
            name_by_resource=MappingProxyType(name_by_resource),
        )

    def with_groups(self, groups: Iterable[ManagedGroup]) -> GroupIndex:
        """Same names and resource aliases, new group payloads (e.g. populated emails)."""
        ordered = tuple(groups)
        return GroupIndex(
            groups=ordered,
            by_name=MappingProxyType({g.name: g for g in ordered}),
            name_by_resource=self.name_by_resource,
        )

    def names(self) -> list[str]:
        return [g.name for g in self.groups]

    def resolve(self, resource_name: str | None) -> ManagedGroup | None:
        if not resource_name:
            return None
        name = self.name_by_resource.get(resource_name)
        return self.by_name.get(name) if name is not None else None

    def __len__(self) -> int:
        return len(self.groups)


@dataclass(frozen=True)
class LabelIndex:
    """Bidirectional id <-> name index of the managed mail labels."""

    name_by_id: Mapping[str, str] = field(default_factory=dict)
    id_by_name: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def build(cls, labels: Iterable[tuple[str, str]]) -> LabelIndex:
        """Build from (id, name) pairs."""
        name_by_id: dict[str, str] = {}
        id_by_name: dict[str, str] = {}
        for label_id, name in labels:
            name_by_id[label_id] = name
            id_by_name[name] = label_id
        return cls(MappingProxyType(name_by_id), MappingProxyType(id_by_name))

    def with_labels(self, labels: Iterable[tuple[str, str]]) -> LabelIndex:
        return LabelIndex.build([*self.name_by_id.items(), *labels])

    def __contains__(self, name: object) -> bool:
        return name in self.id_by_name

    def __len__(self) -> int:
        return len(self.id_by_name)


@dataclass(frozen=True)
class ManagedFilter:
    id: str
    criteria: Mapping[str, Any]
    action: Mapping[str, Any]


@dataclass(frozen=True)
class FilterSpec:
    """Desired filter for one managed group."""

    group_name: str
    label_id: str
    emails: tuple[str, ...]
    spam_label_id: str = "SPAM"

    def payload(self) -> dict[str, Any]:
        return {
            "criteria": {"from": build_from_criterion(self.emails)},
            "action": {
                "addLabelIds": [self.label_id],
                "removeLabelIds": [self.spam_label_id],
            },
        }


@dataclass(frozen=True)
class SyncResult:
    groups: int = 0
    labels_created: int = 0
    filters_deleted: int = 0
    filters_created: int = 0
    empty_groups_skipped: int = 0
    invalid_emails_skipped: int = 0
    dry_run: bool = False

    def summary(self) -> str:
        return (
            f"groups={self.groups} labels_created={self.labels_created} "
            f"filters_deleted={self.filters_deleted} filters_created={self.filters_created} "
            f"empty_groups_skipped={self.empty_groups_skipped} "
            f"invalid_emails_skipped={self.invalid_emails_skipped}"
            + (" (dry-run)" if self.dry_run else "")
        )


class DirectoryService(Protocol):
    """Contacts directory (People API) operations used by the engine."""

    async def list_groups(self) -> list[dict[str, Any]]: ...

    async def list_connections(self, page_size: int, page_token: str | None = None) -> Page: ...


class MailService(Protocol):
    """Mailbox (Gmail API) operations used by the engine.

    delete_filter raises NotFoundError when the filter is already gone.
    """

    async def list_labels(self) -> list[dict[str, Any]]: ...

    async def create_label(self, name: str) -> dict[str, Any]: ...

    async def list_filters(self) -> list[dict[str, Any]]: ...

    async def delete_filter(self, filter_id: str) -> None: ...

    async def create_filter(self, payload: Mapping[str, Any]) -> dict[str, Any]: ...


def build_from_criterion(emails: Sequence[str]) -> str:
    # Gmail OR-set syntax: {a@x.com b@x.com}
    return "{" + " ".join(emails) + "}"


def label_ids(action: Mapping[str, Any] | None, key: str = "addLabelIds") -> Sequence[str]:
    if not action:
        return ()
    return action.get(key) or ()
