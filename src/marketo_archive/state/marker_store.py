from __future__ import annotations

import json
from datetime import datetime

from marketo_archive.core.models import SyncState
from marketo_archive.targets.base import TargetSystem
from marketo_archive.utils.logging import get_logger
from marketo_archive.utils.time import parse_timestamp, to_iso

DEFAULT_MARKER_NAME = ".sync-state.json"


class RepositoryMarkerStateStore:
    """
    Watermark stored as a marker node at the archive root.

    The timestamp lives in the ``<prefix>:lastSyncTimestamp`` property of the
    marker. Neither operation raises: a missing or broken marker reads as a
    first run, and a failed save is logged and reported as False.
    """

    def __init__(self, target: TargetSystem, marker_name: str = DEFAULT_MARKER_NAME, property_prefix: str = "mkto"):
        self.target = target
        self.marker_name = marker_name
        self.property_name = f"{property_prefix}:lastSyncTimestamp"
        self.log = get_logger("marketo_archive.state")

    def load(self) -> SyncState:
        self.log.info("Loading sync state")
        try:
            root_id = self.target.ensure_container_path([])
            node = self.target.find_child_by_name(root_id, self.marker_name)
        except Exception as e:
            self.log.warning("Failed to load sync state, starting fresh: %s: %s", type(e).__name__, e)
            return SyncState()

        if node is None:
            self.log.info("No previous sync state found, starting fresh")
            return SyncState()

        raw = (node.properties or {}).get(self.property_name)
        last_sync = parse_timestamp(raw) if raw else None
        if last_sync is None:
            self.log.warning("Sync state marker has no usable %s (value=%r), starting fresh", self.property_name, raw)
            return SyncState()

        self.log.info("Found previous sync state: lastSyncTimestamp=%s", to_iso(last_sync))
        return SyncState(last_sync_timestamp=last_sync)

    def save(self, timestamp: datetime) -> bool:
        stamp = to_iso(timestamp)
        self.log.info("Saving sync state: %s", stamp)
        properties = {self.property_name: stamp}

        try:
            root_id = self.target.ensure_container_path([])
            node = self.target.find_child_by_name(root_id, self.marker_name)
            if node is not None:
                self.target.set_properties(node.id, properties)
            else:
                content = json.dumps({"lastSyncTimestamp": stamp}, indent=2)
                self.target.create_child(root_id, self.marker_name, content, properties)
        except Exception as e:
            self.log.error("Failed to save sync state: %s: %s", type(e).__name__, e)
            return False

        self.log.info("Sync state saved successfully")
        return True
