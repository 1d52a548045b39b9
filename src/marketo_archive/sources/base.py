from __future__ import annotations
from datetime import datetime
from typing import List, Optional, Protocol

from marketo_archive.core.models import CandidateItem, ItemPayload


class SourceSystem(Protocol):
    """Capability the engine needs from the marketing platform."""

    def list_changed_since(self, since: datetime) -> List[CandidateItem]: ...

    def fetch_payload(self, item_id: int) -> Optional[ItemPayload]: ...
