from __future__ import annotations

from datetime import datetime
from typing import Callable, List, Tuple

from marketo_archive.core.models import CandidateItem, SyncState
from marketo_archive.sources.base import SourceSystem
from marketo_archive.utils.logging import get_logger
from marketo_archive.utils.time import days_ago, to_iso, utc_now


class ChangeSetResolver:
    """Works out the sync window and the candidates that fall inside it."""

    def __init__(self, source: SourceSystem, clock: Callable[[], datetime] = utc_now):
        self.source = source
        self.clock = clock
        self.log = get_logger("marketo_archive.resolver")

    def since_instant(self, state: SyncState, lookback_days: int) -> datetime:
        if state.last_sync_timestamp is not None:
            self.log.info("Syncing emails since last sync: %s", to_iso(state.last_sync_timestamp))
            return state.last_sync_timestamp

        since = days_ago(lookback_days, now=self.clock())
        self.log.info("First sync, looking back %s days: since=%s", lookback_days, to_iso(since))
        return since

    def resolve(self, state: SyncState, lookback_days: int) -> Tuple[datetime, List[CandidateItem]]:
        """
        Return the window start and the items updated at or after it.

        The source listing is filtered again here because the upstream API
        cannot be trusted to filter server-side. Items updated exactly at the
        boundary are kept. Source order is preserved.
        """
        since = self.since_instant(state, lookback_days)

        listed = self.source.list_changed_since(since)
        candidates = [item for item in listed if item.updated_at >= since]

        self.log.info(
            "Change set resolved: listed=%s candidates=%s filtered_out=%s",
            len(listed),
            len(candidates),
            len(listed) - len(candidates),
        )
        return since, candidates
