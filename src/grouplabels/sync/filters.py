"""Filter reconciliation: one filter per non-empty managed group.

Gmail filters cannot be updated in place, so convergence is delete-then-recreate:

1. list all filters and keep those adding at least one managed label
2. delete every managed filter (concurrently; an already-deleted filter counts
   as deleted)
3. only once every deletion has finished, create the desired filters one at a
   time, in group-index order

Creates are never issued concurrently.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from ..errors import NotFoundError
from .models import (
    FilterSpec,
    GroupIndex,
    LabelIndex,
    MailService,
    ManagedFilter,
    build_from_criterion,
    label_ids,
)

log = logging.getLogger(__name__)

__all__ = [
    "build_from_criterion",
    "create_filters",
    "delete_filters",
    "desired_filters",
    "managed_filters",
    "reconcile_filters",
]


def managed_filters(
    filters: Iterable[Mapping[str, Any]], labels: LabelIndex
) -> list[ManagedFilter]:
    """Filters whose addLabelIds reference at least one managed label."""
    out: list[ManagedFilter] = []
    for f in filters:
        action = f.get("action") or {}
        if any(lid in labels.name_by_id for lid in label_ids(action)):
            out.append(
                ManagedFilter(id=f["id"], criteria=f.get("criteria") or {}, action=action)
            )
    return out


def desired_filters(
    groups: GroupIndex, labels: LabelIndex, spam_label_id: str = "SPAM"
) -> tuple[list[FilterSpec], list[str]]:
    """Desired filters in group-index order, plus the names of empty groups skipped."""
    specs: list[FilterSpec] = []
    empty: list[str] = []
    for group in groups.groups:
        if not group.emails:
            log.info("filter-skip name=%s reason=empty-group", group.name)
            empty.append(group.name)
            continue
        label_id = labels.id_by_name.get(group.name)
        if label_id is None:
            # Only reachable in dry-run, where missing labels are not created
            log.info("filter-skip name=%s reason=label-pending", group.name)
            continue
        specs.append(
            FilterSpec(
                group_name=group.name,
                label_id=label_id,
                emails=group.emails,
                spam_label_id=spam_label_id,
            )
        )
    return specs, empty


async def delete_filters(mail: MailService, filters: Sequence[ManagedFilter]) -> int:
    """Delete all given filters concurrently; returns how many were handled."""

    async def _delete(f: ManagedFilter) -> None:
        log.info("filter-delete id=%s criteria=%s", f.id, dict(f.criteria))
        try:
            await mail.delete_filter(f.id)
        except NotFoundError:
            log.debug("filter-already-deleted id=%s", f.id)

    await asyncio.gather(*(_delete(f) for f in filters))
    return len(filters)


async def create_filters(mail: MailService, specs: Sequence[FilterSpec]) -> int:
    """Create filters strictly one after another."""
    created = 0
    for spec in specs:
        log.info("filter-create name=%s emails=%d", spec.group_name, len(spec.emails))
        response = await mail.create_filter(spec.payload())
        log.debug("filter-created name=%s id=%s", spec.group_name, response.get("id"))
        created += 1
    return created


async def reconcile_filters(
    mail: MailService,
    groups: GroupIndex,
    labels: LabelIndex,
    *,
    spam_label_id: str = "SPAM",
    dry_run: bool = False,
) -> tuple[int, int, int]:
    """Converge deployed filters; returns (deleted, created, empty_groups_skipped)."""
    existing = managed_filters(await mail.list_filters(), labels)
    log.debug("managed-filters %s", [(f.id, dict(f.criteria)) for f in existing])

    specs, empty = desired_filters(groups, labels, spam_label_id)
    log.debug("desired-filters %s", [s.payload() for s in specs])

    if dry_run:
        for f in existing:
            log.info("filter-delete id=%s (dry-run)", f.id)
        for spec in specs:
            log.info("filter-create name=%s (dry-run)", spec.group_name)
        return len(existing), len(specs), len(empty)

    deleted = await delete_filters(mail, existing)
    created = await create_filters(mail, specs)
    return deleted, created, len(empty)
