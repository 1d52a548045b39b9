from __future__ import annotations

from datetime import datetime
from typing import Protocol

from marketo_archive.core.models import SyncState


class SyncStateStore(Protocol):
    """Protocol for watermark backends."""

    def load(self) -> SyncState: ...

    def save(self, timestamp: datetime) -> bool: ...
