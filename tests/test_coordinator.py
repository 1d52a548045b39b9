"""
End-to-end behavior of a sync run against in-memory capabilities.
"""

import unittest
from datetime import timedelta
from unittest.mock import Mock

from fakes import FakeSource, FakeTarget, candidate, ts

from marketo_archive.core.batch import BatchRunner
from marketo_archive.core.coordinator import SyncCoordinator
from marketo_archive.core.materializer import ItemMaterializer
from marketo_archive.core.models import SyncJob
from marketo_archive.core.resolver import ChangeSetResolver
from marketo_archive.http.policies import RateLimiter
from marketo_archive.state.marker_store import RepositoryMarkerStateStore


class Clock:
    """Returns scripted instants, then keeps returning the last one."""

    def __init__(self, *instants):
        self.instants = list(instants)

    def __call__(self):
        if len(self.instants) > 1:
            return self.instants.pop(0)
        return self.instants[0]


def build(source, target, clock, lookback_days=90, closeables=()):
    job = SyncJob(lookback_days=lookback_days, item_delay_ms=0)
    return SyncCoordinator(
        state_store=RepositoryMarkerStateStore(target),
        resolver=ChangeSetResolver(source, clock=clock),
        runner=BatchRunner(ItemMaterializer(source, target, clock=clock), limiter=RateLimiter(0)),
        job=job,
        clock=clock,
        closeables=closeables,
        target=target,
    )


class TestSyncCoordinator(unittest.TestCase):
    def setUp(self):
        self.items = [candidate(i, created="2024-03-20T00:00:00", updated="2024-03-25T00:00:00") for i in (1, 2, 3)]
        self.source = FakeSource(self.items)
        self.target = FakeTarget()

    def test_first_run_uploads_everything_and_sets_watermark_to_start(self):
        start = ts("2024-04-01T12:00:00")
        end = start + timedelta(minutes=5)
        result = build(self.source, self.target, Clock(start, start, start, start, start, end)).run_sync()

        self.assertEqual(result.total_candidates, 3)
        self.assertEqual(result.uploaded, 3)
        self.assertEqual(result.succeeded, 3)
        self.assertEqual(result.failed, 0)
        self.assertEqual(result.total_candidates, result.succeeded + result.failed + result.skipped)
        self.assertEqual(result.since, start - timedelta(days=90))
        self.assertTrue(result.state_saved)
        self.assertEqual(result.started_at, start)
        self.assertEqual(result.finished_at, end)
        self.assertEqual(result.duration_ms, 300000)
        self.assertEqual(result.exit_code, 0)

        marker = self.target.children[(FakeTarget.ROOT, ".sync-state.json")]
        self.assertEqual(marker.properties["mkto:lastSyncTimestamp"], "2024-04-01T12:00:00.000Z")

    def test_second_run_without_new_data_uploads_nothing(self):
        first = build(self.source, self.target, Clock(ts("2024-04-01T12:00:00"))).run_sync()
        files_after_first = self.target.file_names()

        # listing keeps returning the same items even though they are older than the watermark
        self.items[0] = candidate(1, created="2024-03-20T00:00:00", updated="2024-04-01T12:00:00")
        self.source.items = self.items
        second = build(self.source, self.target, Clock(ts("2024-04-02T12:00:00"))).run_sync()

        self.assertEqual(first.uploaded, 3)
        self.assertEqual(second.total_candidates, 1)
        self.assertEqual(second.uploaded, 0)
        self.assertEqual(second.already_archived, 1)
        self.assertEqual(second.failed, 0)
        self.assertEqual(self.target.file_names(), files_after_first)

    def test_rerun_with_lost_watermark_is_idempotent(self):
        build(self.source, self.target, Clock(ts("2024-04-01T12:00:00"))).run_sync()
        created = list(self.target.created)
        del self.target.children[(FakeTarget.ROOT, ".sync-state.json")]

        second = build(self.source, self.target, Clock(ts("2024-04-01T13:00:00"))).run_sync()

        self.assertEqual(second.uploaded, 0)
        self.assertEqual(second.already_archived, 3)
        self.assertEqual(second.failed, 0)
        # only the marker was recreated
        self.assertEqual(self.target.created[len(created):], [(FakeTarget.ROOT, ".sync-state.json")])

    def test_item_changed_during_run_is_picked_up_next_run(self):
        start = ts("2024-04-01T12:00:00")
        end = start + timedelta(minutes=10)
        build(self.source, self.target, Clock(start, start, start, start, start, end)).run_sync()

        # edited after listing was taken, before the run ended
        changed = candidate(2, created="2024-03-20T00:00:00", updated="2024-04-01T12:04:00")
        self.source.items = [self.items[0], changed, self.items[2]]
        later = Clock(ts("2024-04-02T00:00:00"))
        coordinator = build(self.source, self.target, later)

        since, candidates = coordinator.resolver.resolve(coordinator.state_store.load(), 90)

        self.assertEqual(since, start)
        self.assertEqual([c.id for c in candidates], [2])

    def test_partial_failures_are_counted_and_run_completes(self):
        items = [candidate(i, created="2024-03-20T00:00:00") for i in range(1, 7)]
        source = FakeSource(items, payloads={2: None, 5: None})

        result = build(source, self.target, Clock(ts("2024-04-01T12:00:00"))).run_sync()

        self.assertEqual(result.failed, 2)
        self.assertEqual(result.failed_ids, {2, 5})
        self.assertEqual(result.succeeded, 4)
        self.assertEqual(result.exit_code, 1)
        self.assertTrue(result.state_saved)

    def test_empty_change_set_leaves_watermark_untouched(self):
        source = FakeSource([])
        result = build(source, self.target, Clock(ts("2024-04-01T12:00:00"))).run_sync()

        self.assertEqual(result.total_candidates, 0)
        self.assertEqual((result.succeeded, result.failed, result.skipped), (0, 0, 0))
        self.assertFalse(result.state_saved)
        self.assertEqual(self.target.created, [])

    def test_watermark_save_failure_does_not_fail_run(self):
        state_store = Mock()
        state_store.load.return_value = RepositoryMarkerStateStore(self.target).load()
        state_store.save.return_value = False
        clock = Clock(ts("2024-04-01T12:00:00"))
        coordinator = SyncCoordinator(
            state_store=state_store,
            resolver=ChangeSetResolver(self.source, clock=clock),
            runner=BatchRunner(ItemMaterializer(self.source, self.target), limiter=RateLimiter(0)),
            clock=clock,
        )

        result = coordinator.run_sync()

        self.assertEqual(result.uploaded, 3)
        self.assertFalse(result.state_saved)
        state_store.save.assert_called_once_with(ts("2024-04-01T12:00:00"))

    def test_fatal_listing_error_propagates_and_saves_nothing(self):
        self.source.list_error = ConnectionError("marketo down")
        closeable = Mock()

        with self.assertRaises(ConnectionError):
            build(self.source, self.target, Clock(ts("2024-04-01T12:00:00")), closeables=[closeable]).run_sync()

        self.assertEqual(self.target.created, [])
        closeable.close.assert_called_once_with()

    def test_unreachable_archive_root_fails_before_listing(self):
        self.target.fail_all = True

        with self.assertRaises(RuntimeError):
            build(self.source, self.target, Clock(ts("2024-04-01T12:00:00"))).run_sync()

        self.assertEqual(self.source.list_calls, [])
        self.assertEqual(self.source.fetch_calls, [])


if __name__ == "__main__":
    unittest.main()
