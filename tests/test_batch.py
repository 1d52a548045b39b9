import unittest
from unittest.mock import Mock

from fakes import FakeSource, FakeTarget, candidate

from marketo_archive.core.batch import BatchRunner
from marketo_archive.core.materializer import ItemMaterializer
from marketo_archive.core.models import AlreadyExists, Failed, RepositoryNode, Uploaded
from marketo_archive.http.policies import RateLimiter


def _runner(source, target, sleeps=None, batch_size=50):
    limiter = RateLimiter(100, sleep=(sleeps.append if sleeps is not None else (lambda s: None)))
    return BatchRunner(ItemMaterializer(source, target), limiter=limiter, batch_size=batch_size)


class TestBatchRunner(unittest.TestCase):
    def test_failures_are_contained_and_recorded(self):
        items = [candidate(i) for i in range(1, 11)]
        source = FakeSource(items, payloads={3: None, 7: None})
        source.failing_ids.add(9)

        outcome = _runner(source, FakeTarget()).run(items)

        self.assertEqual(outcome.failed, 3)
        self.assertEqual(sorted(outcome.failed_ids), [3, 7, 9])
        self.assertEqual(outcome.uploaded, 7)
        self.assertEqual(outcome.succeeded, 7)
        self.assertEqual(outcome.total, 10)
        self.assertEqual(outcome.failures, {"missing_body": 2, "fetch_payload:ConnectionError": 1})
        # every candidate was attempted, in order
        self.assertEqual(source.fetch_calls, list(range(1, 11)))

    def test_delay_follows_every_item_regardless_of_outcome(self):
        items = [candidate(1), candidate(2), candidate(3)]
        source = FakeSource(items, payloads={2: None})
        sleeps = []

        _runner(source, FakeTarget(), sleeps=sleeps).run(items)

        self.assertEqual(sleeps, [0.1, 0.1, 0.1])

    def test_already_archived_is_counted_apart_from_uploads(self):
        items = [candidate(1), candidate(2)]
        source = FakeSource(items)
        target = FakeTarget()
        _runner(source, target).run([items[0]])

        outcome = _runner(source, target).run(items)

        self.assertEqual(outcome.uploaded, 1)
        self.assertEqual(outcome.already_archived, 1)
        self.assertEqual(outcome.succeeded, 2)
        self.assertEqual(outcome.failed, 0)

    def test_duplicate_listing_rows_are_skipped(self):
        items = [candidate(1), candidate(2), candidate(1)]
        source = FakeSource(items)

        outcome = _runner(source, FakeTarget()).run(items)

        self.assertEqual(outcome.skipped, 1)
        self.assertEqual(outcome.uploaded, 2)
        self.assertEqual(outcome.total, 3)
        self.assertEqual(source.fetch_calls, [1, 2])

    def test_outcome_classification(self):
        materializer = Mock()
        node = RepositoryNode(id="n")
        materializer.materialize.side_effect = [Uploaded(node), AlreadyExists(node), Failed(3, "x")]
        runner = BatchRunner(materializer, limiter=RateLimiter(0), batch_size=2)

        outcome = runner.run([candidate(1), candidate(2), candidate(3)])

        self.assertEqual((outcome.uploaded, outcome.already_archived, outcome.failed), (1, 1, 1))
        self.assertEqual(outcome.failed_ids, [3])

    def test_unknown_outcome_is_rejected(self):
        materializer = Mock()
        materializer.materialize.return_value = None
        runner = BatchRunner(materializer, limiter=RateLimiter(0))

        with self.assertRaises(TypeError):
            runner.run([candidate(1)])

    def test_progress_logged_per_batch(self):
        items = [candidate(i) for i in range(1, 6)]
        with self.assertLogs("marketo_archive.batch", level="INFO") as logs:
            _runner(FakeSource(items), FakeTarget(), batch_size=2).run(items)

        started = [line for line in logs.output if "Processing batch" in line]
        self.assertEqual(len(started), 3)


if __name__ == "__main__":
    unittest.main()
