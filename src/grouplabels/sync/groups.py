"""Group extraction: managed contact groups and their member email addresses.

Step 1 keeps the contact groups whose name carries the managed prefix.
Step 2 walks every connection (drained through the pagination collector) and
appends each valid address to every managed group the connection belongs to.

Validation is explicit and tri-state so every skip path can be exercised:
- VALID: appended
- INVALID: present but malformed, skipped
- ABSENT: missing or blank, skipped
Non contact-group memberships (e.g. domain memberships) are ignored.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Any

from .models import DirectoryService, GroupIndex, ManagedGroup
from .paging import collect_pages

log = logging.getLogger(__name__)

__all__ = [
    "EmailCheck",
    "classify_email",
    "discover_groups",
    "extract_groups",
    "is_managed_name",
    "membership_group",
    "populate_groups",
]

# Single address: one @, dotted domain, no whitespace or list separators
_EMAIL_RE = re.compile(
    r"[A-Za-z0-9.!#$%&'*+/=?^_`{|}~-]+@[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?"
    r"(?:\.[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?)+"
)


class EmailCheck(Enum):
    VALID = "valid"
    INVALID = "invalid"
    ABSENT = "absent"


def is_managed_name(name: str | None, prefix: str) -> bool:
    return bool(name) and name.startswith(prefix)  # type: ignore[union-attr]


def classify_email(value: Any) -> EmailCheck:
    if value is None or (isinstance(value, str) and not value.strip()):
        return EmailCheck.ABSENT
    if not isinstance(value, str):
        return EmailCheck.INVALID
    return EmailCheck.VALID if _EMAIL_RE.fullmatch(value) else EmailCheck.INVALID


def membership_group(membership: Mapping[str, Any] | None) -> str | None:
    """Contact-group resource name of a membership, None for any other kind."""
    if not membership:
        return None
    cgm = membership.get("contactGroupMembership") or {}
    return cgm.get("contactGroupResourceName") or None


def discover_groups(groups: Iterable[Mapping[str, Any]], prefix: str) -> GroupIndex:
    """Keep managed groups, in listing order.

    Two groups sharing a managed name collapse into one entry: both resource
    names resolve to it and the first resource name is kept.
    """
    managed: dict[str, ManagedGroup] = {}
    aliases: dict[str, str] = {}
    for group in groups:
        name = group.get("name")
        resource_name = group.get("resourceName")
        if not resource_name or not is_managed_name(name, prefix):
            continue
        if name in managed:
            log.warning(
                "duplicate-group-name name=%s kept=%s merged=%s",
                name,
                managed[name].resource_name,
                resource_name,
            )
            aliases[resource_name] = name
            continue
        managed[name] = ManagedGroup(resource_name=resource_name, name=name)
    return GroupIndex.build(managed.values(), aliases=aliases)


def populate_groups(
    index: GroupIndex,
    connections: Iterable[Mapping[str, Any]],
    *,
    dedupe: bool = False,
) -> tuple[GroupIndex, int]:
    """Return a new index with member emails filled in, plus the skipped-address count."""
    emails: dict[str, list[str]] = {g.name: [] for g in index.groups}
    skipped = 0

    for person in connections:
        addresses = [a.get("value") for a in (person.get("emailAddresses") or []) if a is not None]
        for membership in person.get("memberships") or []:
            group = index.resolve(membership_group(membership))
            if group is None:
                continue
            for value in addresses:
                check = classify_email(value)
                if check is not EmailCheck.VALID:
                    skipped += 1
                    log.debug("email-skipped group=%s reason=%s", group.name, check.value)
                    continue
                emails[group.name].append(value)

    groups = []
    for g in index.groups:
        members = emails[g.name]
        if dedupe:
            members = list(dict.fromkeys(members))
        groups.append(ManagedGroup(resource_name=g.resource_name, name=g.name, emails=tuple(members)))

    return index.with_groups(groups), skipped


async def extract_groups(
    directory: DirectoryService,
    prefix: str,
    *,
    page_size: int = 1000,
    dedupe: bool = False,
) -> tuple[GroupIndex, int]:
    """Discover managed groups, then drain connections and fill their emails."""
    index = discover_groups(await directory.list_groups(), prefix)
    log.debug("managed-groups %s", index.names())

    connections = await collect_pages(directory.list_connections, page_size)
    log.debug("connections-fetched count=%d", len(connections))

    return populate_groups(index, connections, dedupe=dedupe)
