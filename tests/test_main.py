import unittest
from datetime import timedelta
from unittest.mock import Mock, patch

from fakes import ts

from marketo_archive import main as cli
from marketo_archive.config_models import ArchiveConfig, ConfigError
from marketo_archive.core.factory import ComponentFactory, config_to_job
from marketo_archive.core.models import RunResult


def make_config(**overrides):
    data = {
        "marketo": {"endpoint": "https://mk.example.com", "client_id": "cid", "client_secret": "secret"},
        "alfresco": {"url": "https://alf.example.com", "username": "u", "password": "p"},
        "logging_config": None,
    }
    data.update(overrides)
    return ArchiveConfig(**data)


def make_result(**fields):
    start = ts("2024-04-01T12:00:00")
    return RunResult(started_at=start, finished_at=start + timedelta(seconds=42), **fields)


class TestFormatSummary(unittest.TestCase):
    def test_counts_and_failed_ids(self):
        result = make_result(
            total_candidates=5,
            succeeded=3,
            uploaded=2,
            already_archived=1,
            failed=2,
            failed_ids={12, 4},
            state_saved=True,
        )
        text = cli.format_summary(result)

        self.assertIn("Total emails: 5", text)
        self.assertIn("  Uploaded: 2", text)
        self.assertIn("  Skipped (already exists): 1", text)
        self.assertIn("Failed: 2", text)
        self.assertIn("Duration: 42s", text)
        self.assertIn("Failed email IDs: 4, 12", text)
        self.assertNotIn("not saved", text)

    def test_unsaved_state_is_flagged(self):
        text = cli.format_summary(make_result(total_candidates=1, succeeded=1, uploaded=1, state_saved=False))
        self.assertIn("Warning: sync state was not saved", text)

    def test_empty_run_has_no_warning(self):
        text = cli.format_summary(make_result())
        self.assertNotIn("Warning", text)
        self.assertNotIn("Failed email IDs", text)


class TestMain(unittest.TestCase):
    def setUp(self):
        patcher = patch.object(cli, "setup_logging")
        self.setup_logging = patcher.start()
        self.addCleanup(patcher.stop)

    @patch.object(cli, "run_one")
    @patch.object(cli, "load_and_validate_config")
    def test_clean_run_exits_zero(self, load, run_one):
        load.return_value = make_config()
        run_one.return_value = make_result(total_candidates=1, succeeded=1, uploaded=1, state_saved=True)

        self.assertEqual(cli.main(["configs/sync.yaml"]), 0)
        load.assert_called_once_with("configs/sync.yaml")
        self.setup_logging.assert_called_once_with(None, level=None)

    @patch.object(cli, "run_one")
    @patch.object(cli, "load_and_validate_config")
    def test_item_failures_exit_one(self, load, run_one):
        load.return_value = make_config()
        run_one.return_value = make_result(total_candidates=2, succeeded=1, failed=1, failed_ids={7})
        self.assertEqual(cli.main([]), 1)
        load.assert_called_once_with(None)

    @patch.object(cli, "run_one")
    @patch.object(cli, "load_and_validate_config")
    def test_fatal_error_exits_one(self, load, run_one):
        load.return_value = make_config()
        run_one.side_effect = ConnectionError("marketo unreachable")
        self.assertEqual(cli.main([]), 1)

    @patch.object(cli, "load_and_validate_config")
    def test_config_error_exits_two(self, load):
        load.side_effect = ConfigError("bad config")
        self.assertEqual(cli.main(["missing.yaml"]), 2)
        self.setup_logging.assert_not_called()

    def test_usage_error_exits_two(self):
        self.assertEqual(cli.main(["a.yaml", "b.yaml"]), 2)
        self.assertEqual(cli.main(["--help"]), 2)

    @patch.object(cli, "run_schedule")
    @patch.object(cli, "load_and_validate_config")
    def test_schedule_mode_hands_off_to_scheduler(self, load, run_schedule):
        config = make_config(schedule={"enabled": True, "interval_hours": 6})
        load.return_value = config
        self.assertEqual(cli.main([]), 0)
        run_schedule.assert_called_once_with(config)

    @patch.object(cli, "run_one")
    def test_scheduled_job_swallows_run_errors(self, run_one):
        run_one.side_effect = RuntimeError("boom")
        with self.assertLogs("marketo_archive.main", level="ERROR"):
            cli.run_scheduled_once(make_config())

    @patch.object(cli, "BlockingScheduler")
    def test_run_schedule_registers_single_instance_job(self, scheduler_cls):
        scheduler = scheduler_cls.return_value
        config = make_config(schedule={"enabled": True, "interval_hours": 6})

        cli.run_schedule(config)

        _, kwargs = scheduler.add_job.call_args
        self.assertEqual(kwargs["max_instances"], 1)
        self.assertTrue(kwargs["coalesce"])
        self.assertEqual(kwargs["args"], [config])
        scheduler.start.assert_called_once_with()


class TestComponentFactory(unittest.TestCase):
    def test_config_to_job(self):
        config = make_config(sync={"lookback_days": 10, "item_delay_ms": 0, "batch_size": 5, "property_prefix": "arc"})
        job = config_to_job(config)
        self.assertEqual((job.lookback_days, job.item_delay_ms, job.batch_size), (10, 0, 5))
        self.assertEqual(job.property_prefix, "arc")
        self.assertEqual(job.marker_name, ".sync-state.json")

    def test_build_wires_shared_components(self):
        sleep = Mock()
        built = ComponentFactory(sleep=sleep).build(make_config(sync={"property_prefix": "arc"}))

        self.assertIs(built.coordinator.state_store, built.state_store)
        self.assertIs(built.coordinator.runner, built.runner)
        self.assertIs(built.runner.materializer, built.materializer)
        self.assertIs(built.materializer.source, built.source)
        self.assertIs(built.materializer.target, built.target)
        self.assertIs(built.state_store.target, built.target)
        self.assertIs(built.source.retry, built.target.retry)
        self.assertEqual(built.materializer.property_prefix, "arc")
        self.assertEqual(built.coordinator.closeables, [built.source, built.target])
        self.assertIs(built.coordinator.target, built.target)
        self.assertEqual(built.target.base_path, "Marketo Emails")


if __name__ == "__main__":
    unittest.main()
