from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence

from tqdm import tqdm

from .config import BackupConfig, build_config, read_config_file
from .errors import BackupError, ConfigurationError
from .github import RepositoryDescriptor
from .logger import configure_logging
from .orchestrator import BackupOrchestrator
from .reporter import LoggingReporter

LOG = logging.getLogger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Download a zip archive of every repository owned by a GitHub user or organization."
    )
    parser.add_argument(
        "-t",
        "--token",
        help="GitHub personal access token (default: the configured token_env, then $GITHUB_TOKEN).",
    )
    parser.add_argument("-o", "--owner", help="GitHub username or organization name.")
    parser.add_argument(
        "--owner-type",
        choices=["user", "org"],
        help="Type of owner (default user).",
    )
    parser.add_argument("--output", help="Output directory for archives (default data).")
    parser.add_argument("--api-url", help="GitHub API base URL, for GitHub Enterprise (default https://api.github.com).")
    parser.add_argument(
        "--config",
        default=os.getenv("ZIPBALL_BACKUP_CONFIG"),
        help="Optional YAML configuration file; command-line flags take precedence.",
    )
    parser.add_argument("--log-level", help="Log level (default $LOG_LEVEL, then INFO).")
    parser.add_argument("--log-file", help="Append-only log file (default transition.log).")
    parser.add_argument("--timeout", type=float, help="Per-request timeout in seconds (default none).")
    parser.add_argument("--no-progress", action="store_true", help="Disable download progress bars.")
    parser.add_argument("--no-manifest", action="store_true", help="Do not write manifest.json.")
    return parser.parse_args(argv)


def load_configuration(args: argparse.Namespace) -> BackupConfig:
    data: Dict[str, Any] = {}
    if args.config:
        data = read_config_file(Path(args.config).expanduser())

    overrides: Dict[str, Any] = {
        "owner": args.owner,
        "owner_type": args.owner_type,
        "output_dir": args.output,
        "api_url": args.api_url,
        "request_timeout": args.timeout,
        "write_manifest": False if args.no_manifest else None,
        "auth": {"token": args.token},
        "logging": {"level": args.log_level, "file": args.log_file},
    }
    return build_config(data, overrides)


def archive_bar(descriptor: RepositoryDescriptor) -> tqdm:
    return tqdm(
        desc=descriptor.full_name,
        unit="B",
        unit_scale=True,
        unit_divisor=1024,
        leave=False,
    )


def repository_bar(total: int) -> tqdm:
    return tqdm(total=total, desc="Repositories", unit="repo")


def run_backup(config: BackupConfig, show_progress: bool = True) -> int:
    orchestrator = BackupOrchestrator(
        config=config,
        reporter=LoggingReporter(),
        progress_factory=archive_bar if show_progress else None,
        run_progress_factory=repository_bar if show_progress else None,
    )
    try:
        summary = orchestrator.run()
    except BackupError as exc:
        LOG.error("Backup aborted: %s", exc)
        return 1

    if summary.failed:
        LOG.warning("%s of %s repositories failed to back up", summary.failed, summary.total)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)

    try:
        config = load_configuration(args)
    except ConfigurationError as exc:
        configure_logging(args.log_level or os.getenv("LOG_LEVEL") or "INFO")
        LOG.error("Configuration error: %s", exc)
        return 2

    configure_logging(config.logging.level, config.logging.file)

    show_progress = not args.no_progress
    if config.scheduler:
        return run_scheduled(config, lambda: load_configuration(args), show_progress=show_progress)
    return run_backup(config, show_progress=show_progress)


def run_scheduled(
    config: BackupConfig,
    reload_config: Callable[[], BackupConfig],
    show_progress: bool = True,
) -> int:
    """Back up again at every cron occurrence until signalled or the schedule is removed.

    The configuration is reloaded before each run so edits to the YAML file
    apply without a restart; an unreadable reload keeps the previous settings.
    """
    stop = threading.Event()

    def _request_stop(signum: int, _frame: Optional[object]) -> None:
        LOG.info("Received signal %s; stopping scheduler", signum)
        stop.set()

    signal.signal(signal.SIGTERM, _request_stop)
    signal.signal(signal.SIGINT, _request_stop)

    scheduler = config.scheduler
    due = datetime.now(scheduler.zone)
    if not scheduler.run_on_startup:
        due = scheduler.next_run(due)
    LOG.info("First backup of %s at %s", config.owner, due.isoformat())

    while _wait_until(due, stop):
        try:
            config = reload_config()
        except ConfigurationError as exc:
            LOG.error("Failed to reload configuration: %s; keeping previous settings", exc)
        if not config.scheduler:
            LOG.info("Scheduler removed from configuration; stopping")
            break
        scheduler = config.scheduler

        if run_backup(config, show_progress=show_progress) != 0:
            LOG.warning("Scheduled backup of %s aborted", config.owner)

        due = scheduler.next_run(datetime.now(scheduler.zone))
        LOG.info("Next backup of %s at %s", config.owner, due.isoformat())

    LOG.info("Scheduler stopped")
    return 0


def _wait_until(due: datetime, stop: threading.Event) -> bool:
    """Sleep until ``due``; False once a stop was requested."""
    while not stop.is_set():
        remaining = (due - datetime.now(due.tzinfo)).total_seconds()
        if remaining <= 0:
            return True
        stop.wait(min(remaining, 60))
    return False


if __name__ == "__main__":
    sys.exit(main())
