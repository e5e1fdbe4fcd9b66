from __future__ import annotations

import logging
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, ContextManager, List, Optional, Protocol

from .config import BackupConfig
from .errors import ConfigurationError, StorageError
from .github import GitHubAPI, RepositoryDescriptor, Skipped, download_archive, list_repositories
from .manifest import MANIFEST_FILENAME, Manifest, RepositoryManifest
from .reporter import BackupEvent, EventKind, Reporter

LOG = logging.getLogger(__name__)


class ProgressSink(Protocol):
    def update(self, n: int) -> Any:
        ...


ApiFactory = Callable[..., GitHubAPI]
ProgressFactory = Callable[[RepositoryDescriptor], ContextManager[ProgressSink]]
RunProgressFactory = Callable[[int], ContextManager[ProgressSink]]


class _NullProgress:
    def __enter__(self) -> "_NullProgress":
        return self

    def __exit__(self, *exc_info: object) -> None:
        return None

    def update(self, n: int) -> None:
        return None


def _no_progress(_subject: object) -> _NullProgress:
    return _NullProgress()


@dataclass
class RunSummary:
    owner: str
    started_at: datetime
    completed_at: datetime
    repositories: List[RepositoryManifest] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.repositories)

    @property
    def downloaded(self) -> int:
        return self._count("downloaded")

    @property
    def skipped(self) -> int:
        return self._count("skipped")

    @property
    def failed(self) -> int:
        return self._count("failed")

    @property
    def succeeded(self) -> int:
        return self.downloaded + self.skipped

    def _count(self, status: str) -> int:
        return sum(1 for repo in self.repositories if repo.status == status)


class BackupOrchestrator:
    """Lists every repository of the configured owner and downloads each archive.

    Setup problems (credential, client, output directory, listing) abort the
    run by raising. A failure while backing up one repository is recorded and
    the run moves on to the next one.
    """

    def __init__(
        self,
        config: BackupConfig,
        reporter: Reporter,
        api_factory: ApiFactory = GitHubAPI,
        progress_factory: Optional[ProgressFactory] = None,
        run_progress_factory: Optional[RunProgressFactory] = None,
    ) -> None:
        self._config = config
        self._reporter = reporter
        self._api_factory = api_factory
        self._progress_factory = progress_factory or _no_progress
        self._run_progress_factory = run_progress_factory or _no_progress

    def run(self) -> RunSummary:
        config = self._config
        started_at = datetime.now(timezone.utc)
        self._emit(
            EventKind.RUN_STARTED,
            f"Starting GitHub backup of {config.owner_type.value} '{config.owner}' into {config.output_dir}",
        )

        token = config.auth.resolved_token()
        if not token:
            raise ConfigurationError(
                "GitHub token is required. Set the GITHUB_TOKEN environment variable or use --token."
            )
        api = self._api_factory(token, base_url=config.api_url, timeout=config.request_timeout)

        try:
            try:
                config.output_dir.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise StorageError(f"Failed to create output directory {config.output_dir}: {exc}") from exc

            repositories = list_repositories(
                api,
                config.owner,
                config.owner_type,
                on_page=self._page_fetched,
            )
            self._emit(
                EventKind.REPOSITORIES_LISTED,
                f"Found {len(repositories)} repositories to backup",
                details={"count": len(repositories)},
            )

            summary = RunSummary(owner=config.owner, started_at=started_at, completed_at=started_at)
            with self._run_progress_factory(len(repositories)) as overall:
                for descriptor in repositories:
                    entry = self._backup_one(api, descriptor)
                    summary.repositories.append(entry)
                    if entry.error:
                        summary.errors.append(f"{entry.full_name}: {entry.error}")
                    overall.update(1)
        finally:
            api.close()

        summary.completed_at = datetime.now(timezone.utc)
        if config.write_manifest:
            self._write_manifest(summary)

        self._emit(
            EventKind.RUN_COMPLETED,
            f"Backup complete: {summary.succeeded} of {summary.total} succeeded "
            f"({summary.downloaded} downloaded, {summary.skipped} skipped, {summary.failed} failed)",
            details={
                "total": summary.total,
                "downloaded": summary.downloaded,
                "skipped": summary.skipped,
                "failed": summary.failed,
            },
        )
        return summary

    def _backup_one(self, api: GitHubAPI, descriptor: RepositoryDescriptor) -> RepositoryManifest:
        entry = RepositoryManifest(
            name=descriptor.name,
            full_name=descriptor.full_name,
            updated_at=descriptor.updated_at,
            default_branch=descriptor.default_branch,
        )
        try:
            with self._progress_factory(descriptor) as progress:
                outcome = download_archive(
                    api,
                    self._config.owner,
                    descriptor,
                    self._config.output_dir,
                    progress=progress.update,
                    chunk_size=self._config.chunk_size,
                )
        except Exception as exc:  # noqa: BLE001
            entry.status = "failed"
            entry.error = str(exc)
            LOG.debug("Traceback:\n%s", traceback.format_exc())
            self._emit(
                EventKind.REPOSITORY_FAILED,
                f"Failed to backup {descriptor.full_name}: {exc}",
                repository=descriptor.full_name,
                details={"error": type(exc).__name__},
            )
            return entry

        entry.archive_path = str(outcome.path)
        if isinstance(outcome, Skipped):
            entry.status = "skipped"
            self._emit(
                EventKind.REPOSITORY_SKIPPED,
                f"Skipping {outcome.path.name} (already exists)",
                repository=descriptor.full_name,
            )
        else:
            entry.status = "downloaded"
            entry.bytes = outcome.bytes
            self._emit(
                EventKind.REPOSITORY_DOWNLOADED,
                f"Downloaded {outcome.path.name} ({outcome.bytes} bytes in {outcome.elapsed_seconds:.2f}s, "
                f"{outcome.throughput / 1024:.1f} KiB/s)",
                repository=descriptor.full_name,
                details={"bytes": outcome.bytes, "elapsed_seconds": outcome.elapsed_seconds},
            )
        return entry

    def _page_fetched(self, page: int, count: int) -> None:
        self._emit(
            EventKind.PAGE_FETCHED,
            f"Fetched page {page} of repositories ({count} entries)",
            details={"page": page, "count": count},
        )

    def _write_manifest(self, summary: RunSummary) -> None:
        manifest = Manifest(
            owner=self._config.owner,
            owner_type=self._config.owner_type.value,
            started_at=summary.started_at,
            completed_at=summary.completed_at,
            repositories=summary.repositories,
            errors=summary.errors,
        )
        manifest_path = self._config.output_dir / MANIFEST_FILENAME
        try:
            manifest.write(manifest_path)
        except OSError as exc:
            LOG.error("Failed to write backup manifest %s: %s", manifest_path, exc)
            return
        self._emit(EventKind.MANIFEST_WRITTEN, f"Backup manifest written to {manifest_path}")

    def _emit(
        self,
        kind: EventKind,
        message: str,
        repository: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> None:
        self._reporter.record(BackupEvent(kind=kind, message=message, repository=repository, details=details or {}))
