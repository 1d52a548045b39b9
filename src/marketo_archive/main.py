from __future__ import annotations

import sys
from typing import Optional

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from marketo_archive.config_models import ArchiveConfig, ConfigError, load_and_validate_config
from marketo_archive.core.factory import ComponentFactory
from marketo_archive.core.models import RunResult
from marketo_archive.utils.logging import get_logger, setup_logging

log = get_logger("marketo_archive.main")


def format_summary(result: RunResult) -> str:
    """Render a run result the way CI logs show it."""
    lines = [
        "",
        "=== Sync Summary ===",
        f"Total emails: {result.total_candidates}",
        f"Processed: {result.succeeded}",
        f"  Uploaded: {result.uploaded}",
        f"  Skipped (already exists): {result.already_archived}",
        f"Duplicates in listing: {result.skipped}",
        f"Failed: {result.failed}",
        f"Duration: {round(result.duration_ms / 1000)}s",
    ]
    if result.total_candidates and not result.state_saved:
        lines.append("Warning: sync state was not saved")
    if result.failed_ids:
        lines.append("")
        lines.append("Failed email IDs: " + ", ".join(str(i) for i in sorted(result.failed_ids)))
    return "\n".join(lines)


def run_one(config: ArchiveConfig) -> RunResult:
    """Run a single sync pass."""
    built = ComponentFactory().build(config)
    return built.coordinator.run_sync()


def run_scheduled_once(config: ArchiveConfig) -> None:
    """Scheduler job: one pass, errors logged so the scheduler keeps running."""
    try:
        result = run_one(config)
        print(format_summary(result))
    except Exception:
        log.exception("Scheduled sync failed")


def run_schedule(config: ArchiveConfig) -> None:
    """Run the sync on a fixed interval until interrupted."""
    scheduler = BlockingScheduler()

    interval_hours = config.schedule.interval_hours
    print(f"Scheduling sync every {interval_hours} hours")
    trigger = IntervalTrigger(hours=interval_hours)

    scheduler.add_job(
        run_scheduled_once,
        trigger=trigger,
        args=[config],
        id="marketo_archive_sync",
        name="Scheduled Marketo archive sync",
        max_instances=1,
        coalesce=True,
    )

    try:
        scheduler.start()
    except KeyboardInterrupt:
        print("Scheduler stopped by user")


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the archive sync."""
    args = list(sys.argv[1:] if argv is None else argv)
    if len(args) > 1 or (args and args[0] in ("-h", "--help")):
        print("Usage: marketo-archive [configs/sync.yaml]")
        return 2

    config_path = args[0] if args else None
    try:
        config = load_and_validate_config(config_path)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    setup_logging(config.logging_config, level=config.log_level)

    if config.schedule.enabled:
        run_schedule(config)
        return 0

    try:
        result = run_one(config)
    except Exception as e:
        print(f"Sync failed: {type(e).__name__}: {e}", file=sys.stderr)
        return 1

    print(format_summary(result))
    return result.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
