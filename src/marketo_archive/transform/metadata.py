from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, Optional

from marketo_archive.core.models import ArchivePlacement, CandidateItem, ItemPayload
from marketo_archive.utils.time import to_iso


def _raw_value(item: CandidateItem, key: str) -> Optional[str]:
    """Read a ``{"type": ..., "value": ...}`` field off the raw source record."""
    field = item.raw.get(key)
    if isinstance(field, dict):
        value = field.get("value")
    else:
        value = field
    return str(value) if value not in (None, "") else None


def resolve_subject(item: CandidateItem, payload: ItemPayload) -> Optional[str]:
    return payload.subject or _raw_value(item, "subject")


def resolve_sender_name(item: CandidateItem, payload: ItemPayload) -> Optional[str]:
    return payload.sender_name or _raw_value(item, "fromName")


def resolve_sender_address(item: CandidateItem, payload: ItemPayload) -> Optional[str]:
    return payload.sender_address or _raw_value(item, "fromEmail")


def item_properties(
    item: CandidateItem,
    payload: ItemPayload,
    placement: ArchivePlacement,
    synced_at: datetime,
    prefix: str = "mkto",
) -> Dict[str, Any]:
    """Property set stored on the archived HTML node. Absent values are omitted."""
    props = {
        f"{prefix}:emailId": item.id,
        f"{prefix}:emailName": item.display_name,
        f"{prefix}:campaignName": placement.container_path[-1],
        f"{prefix}:subject": resolve_subject(item, payload),
        f"{prefix}:fromName": resolve_sender_name(item, payload),
        f"{prefix}:fromEmail": resolve_sender_address(item, payload),
        f"{prefix}:createdAt": to_iso(item.created_at),
        f"{prefix}:updatedAt": to_iso(item.updated_at),
        f"{prefix}:lastSyncedAt": to_iso(synced_at),
    }
    return {k: v for k, v in props.items() if v is not None}


def metadata_properties(item: CandidateItem, prefix: str = "mkto") -> Dict[str, Any]:
    """Property set stored on the sibling metadata node."""
    return {
        f"{prefix}:emailId": item.id,
        f"{prefix}:emailName": item.display_name,
    }


def metadata_document(item: CandidateItem, payload: ItemPayload) -> bytes:
    """
    Audit record written next to the HTML file.

    Holds the full source record plus the fetched payload fields. Keys are
    sorted so identical input always produces identical bytes.
    """
    email = dict(item.raw) if item.raw else {
        "id": item.id,
        "name": item.display_name,
        "createdAt": to_iso(item.created_at),
        "updatedAt": to_iso(item.updated_at),
        "folder": {"folderName": item.group_label} if item.group_label else None,
    }
    doc = {
        "email": email,
        "content": {
            "subject": payload.subject,
            "fromName": payload.sender_name,
            "fromEmail": payload.sender_address,
            "textContent": payload.text_body,
        },
    }
    return json.dumps(doc, ensure_ascii=False, sort_keys=True, indent=2, default=str).encode("utf-8")
