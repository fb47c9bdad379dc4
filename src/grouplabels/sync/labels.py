"""Label reconciliation: one mail label per managed contact group.

Labels are only ever created. A label whose group disappeared stays in place,
and the next run reuses any label whose name still matches a group.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from .groups import is_managed_name
from .models import GroupIndex, LabelIndex, MailService

log = logging.getLogger(__name__)

__all__ = ["index_labels", "missing_label_names", "reconcile_labels"]


def index_labels(labels: Iterable[Mapping[str, Any]], prefix: str) -> LabelIndex:
    """Index the managed subset of all mail labels."""
    return LabelIndex.build(
        (label["id"], label["name"])
        for label in labels
        if label.get("id") and is_managed_name(label.get("name"), prefix)
    )


def missing_label_names(groups: GroupIndex, labels: LabelIndex) -> list[str]:
    return [name for name in groups.names() if name not in labels]


async def reconcile_labels(
    mail: MailService,
    groups: GroupIndex,
    all_labels: Iterable[Mapping[str, Any]],
    prefix: str,
    *,
    dry_run: bool = False,
) -> tuple[LabelIndex, list[str]]:
    """Create the labels that are missing; return the updated index and the created names."""
    labels = index_labels(all_labels, prefix)
    log.debug("managed-labels %s", dict(labels.id_by_name))

    missing = missing_label_names(groups, labels)
    if not missing:
        return labels, []

    if dry_run:
        for name in missing:
            log.info("label-create name=%s (dry-run)", name)
        return labels, missing

    async def _create(name: str) -> tuple[str, str]:
        log.info("label-create name=%s", name)
        created = await mail.create_label(name)
        return created["id"], name

    # Names come from a unique group index, so concurrent creates never collide
    created = await asyncio.gather(*(_create(name) for name in missing))
    return labels.with_labels(created), missing
