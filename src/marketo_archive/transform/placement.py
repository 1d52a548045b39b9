from __future__ import annotations

import re
from typing import Any, Optional

from marketo_archive.core.models import ArchivePlacement, CandidateItem
from marketo_archive.utils.time import path_parts

UNCATEGORIZED = "Uncategorized"

_RESERVED = re.compile(r'[/\\:*?"<>|]')


def sanitize_segment(value: Any) -> str:
    """Replace characters the repository forbids in names with '-'."""
    return _RESERVED.sub("-", str(value if value is not None else ""))


def group_segment(label: Optional[str]) -> str:
    """Folder name for an item's group; blank labels fall back to Uncategorized."""
    if label is None or not str(label).strip():
        return UNCATEGORIZED
    return sanitize_segment(label)


def compute_placement(item: CandidateItem) -> ArchivePlacement:
    """
    Derive the archive location of an item.

    Layout is ``YYYY/MM/<group>`` from the item's creation instant, with the
    file named ``<id>-<display name>``.
    """
    year, month = path_parts(item.created_at)
    return ArchivePlacement(
        container_path=(year, month, group_segment(item.group_label)),
        file_base_name=f"{item.id}-{sanitize_segment(item.display_name)}",
    )
