from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Iterable, Optional

from marketo_archive.core.batch import BatchRunner
from marketo_archive.core.models import RunResult, SyncJob
from marketo_archive.core.resolver import ChangeSetResolver
from marketo_archive.state.base import SyncStateStore
from marketo_archive.targets.base import TargetSystem
from marketo_archive.utils.logging import get_logger
from marketo_archive.utils.time import to_iso, utc_now


class SyncCoordinator:
    """
    Orchestrates one incremental sync run.

    The watermark written at the end of a run is the run's *start* instant, so
    anything modified while the run was in progress is listed again next time.
    Re-listed items that already landed are absorbed by the name-based
    de-duplication in the materializer.
    """

    def __init__(
        self,
        state_store: SyncStateStore,
        resolver: ChangeSetResolver,
        runner: BatchRunner,
        job: Optional[SyncJob] = None,
        clock: Callable[[], datetime] = utc_now,
        closeables: Iterable[Any] = (),
        target: Optional[TargetSystem] = None,
    ):
        """
        Args:
            state_store: Backend holding the watermark.
            resolver: Computes the window and candidate list.
            runner: Processes the candidates.
            job: Run settings (lookback window etc.).
            clock: Source of "now"; injectable for tests.
            closeables: Resources with a close() method released after the run.
            target: Repository whose archive root must resolve before anything is listed.
        """
        self.state_store = state_store
        self.resolver = resolver
        self.runner = runner
        self.job = job or SyncJob()
        self.clock = clock
        self.closeables = list(closeables)
        self.target = target
        self.log = get_logger("marketo_archive.sync")

    def run_sync(self) -> RunResult:
        """
        Execute one sync run.

        Per-item failures are counted in the result. Failures of the listing,
        the target root or anything else outside a single item propagate.
        """
        started_at = self.clock()
        result = RunResult(started_at=started_at, finished_at=started_at)
        self.log.info("Starting Marketo to Alfresco sync")

        try:
            if self.target is not None:
                self.target.ensure_container_path(())
            state = self.state_store.load()
            since, candidates = self.resolver.resolve(state, self.job.lookback_days)
            result.since = since
            result.total_candidates = len(candidates)

            if not candidates:
                self.log.info("No new emails to sync")
            else:
                outcome = self.runner.run(candidates)
                result.uploaded = outcome.uploaded
                result.already_archived = outcome.already_archived
                result.succeeded = outcome.succeeded
                result.failed = outcome.failed
                result.skipped = outcome.skipped
                result.failed_ids = set(outcome.failed_ids)

                result.state_saved = self.state_store.save(started_at)
                if not result.state_saved:
                    self.log.warning("Watermark not persisted; next run will reprocess from %s", to_iso(since))

            result.finished_at = self.clock()
        except Exception:
            self.log.exception("Sync failed with error")
            raise
        finally:
            self._cleanup()

        self.log.info(
            "Sync completed: total=%s succeeded=%s (uploaded=%s already_archived=%s) failed=%s skipped=%s duration_ms=%s",
            result.total_candidates,
            result.succeeded,
            result.uploaded,
            result.already_archived,
            result.failed,
            result.skipped,
            result.duration_ms,
        )
        return result

    def _cleanup(self) -> None:
        """Release HTTP sessions held by the adapters."""
        for resource in self.closeables:
            try:
                resource.close()
            except Exception as e:
                self.log.warning("Error closing %s: %s", type(resource).__name__, type(e).__name__)
