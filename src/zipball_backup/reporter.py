from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Protocol


class EventKind(enum.Enum):
    RUN_STARTED = "run_started"
    PAGE_FETCHED = "page_fetched"
    REPOSITORIES_LISTED = "repositories_listed"
    REPOSITORY_SKIPPED = "repository_skipped"
    REPOSITORY_DOWNLOADED = "repository_downloaded"
    REPOSITORY_FAILED = "repository_failed"
    MANIFEST_WRITTEN = "manifest_written"
    RUN_COMPLETED = "run_completed"


@dataclass(frozen=True)
class BackupEvent:
    kind: EventKind
    message: str
    repository: Optional[str] = None
    details: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_failure(self) -> bool:
        return self.kind is EventKind.REPOSITORY_FAILED


class Reporter(Protocol):
    def record(self, event: BackupEvent) -> None:
        ...


class LoggingReporter:
    """Forwards backup events to the standard logging handlers."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._log = logger or logging.getLogger("zipball_backup.run")

    def record(self, event: BackupEvent) -> None:
        level = logging.ERROR if event.is_failure else logging.INFO
        self._log.log(level, "[Backup] %s", event.message)
