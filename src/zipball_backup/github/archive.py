from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional, Tuple, Union
from urllib.parse import quote

import requests

from zipball_backup.errors import ApiError, StorageError, TransportError

from .api import GitHubAPI
from .listing import RepositoryDescriptor

LOG = logging.getLogger(__name__)

CHUNK_SIZE = 8192
UNKNOWN_DATE = "unknown"
PARTIAL_SUFFIX = ".part"

ProgressCallback = Callable[[int], None]


@dataclass(frozen=True)
class Skipped:
    path: Path


@dataclass(frozen=True)
class Downloaded:
    path: Path
    bytes: int
    elapsed_seconds: float

    @property
    def throughput(self) -> float:
        """Bytes per second; informational only."""
        if self.elapsed_seconds <= 0:
            return float(self.bytes)
        return self.bytes / self.elapsed_seconds


DownloadOutcome = Union[Skipped, Downloaded]


def archive_date(updated_at: str) -> str:
    date, separator, _ = updated_at.partition("T")
    if not separator or not date:
        return UNKNOWN_DATE
    return date


def safe_repository_name(name: str) -> str:
    return name.replace("/", "_")


def archive_filename(owner: str, descriptor: RepositoryDescriptor) -> str:
    return f"{owner}_{safe_repository_name(descriptor.name)}_{archive_date(descriptor.updated_at)}.zip"


def archive_path(owner: str, name: str, branch: str) -> str:
    # Branch names may contain "/", "#" and "%"; only the slash stays literal.
    return f"repos/{quote(owner, safe='')}/{quote(name, safe='')}/zipball/{quote(branch, safe='/')}"


def iter_counted(chunks: Iterable[bytes]) -> Iterator[Tuple[bytes, int]]:
    """Yield each non-empty chunk together with the running byte total."""
    total = 0
    for chunk in chunks:
        if not chunk:
            continue
        total += len(chunk)
        yield chunk, total


def write_chunks(
    chunks: Iterable[bytes],
    destination: Path,
    progress: Optional[ProgressCallback] = None,
) -> int:
    total = 0
    with destination.open("wb") as fh:
        for chunk, total in iter_counted(chunks):
            fh.write(chunk)
            if progress:
                progress(len(chunk))
    return total


def download_archive(
    api: GitHubAPI,
    owner: str,
    descriptor: RepositoryDescriptor,
    output_dir: Path,
    progress: Optional[ProgressCallback] = None,
    chunk_size: int = CHUNK_SIZE,
) -> DownloadOutcome:
    """Download the zipball of ``descriptor``'s default branch into ``output_dir``.

    An archive whose computed filename already exists is skipped without any
    request. The body is streamed into a ``.part`` file that is renamed into
    place once complete and removed on any failure.
    """
    destination = output_dir / archive_filename(owner, descriptor)
    if destination.exists():
        LOG.debug("Archive %s already present", destination)
        return Skipped(path=destination)

    started = time.monotonic()
    path = archive_path(owner, descriptor.name, descriptor.default_branch)
    with api.get(path, stream=True) as response:
        if not response.ok:
            raise ApiError(response.status_code, repo=descriptor.full_name)

        partial = destination.with_name(destination.name + PARTIAL_SUFFIX)
        try:
            byte_count = write_chunks(response.iter_content(chunk_size=chunk_size), partial, progress)
            os.replace(partial, destination)
        except requests.RequestException as exc:
            _discard(partial)
            raise TransportError(f"Download of {descriptor.full_name} interrupted: {exc}") from exc
        except OSError as exc:
            _discard(partial)
            raise StorageError(f"Failed to write {destination}: {exc}") from exc
        except BaseException:
            _discard(partial)
            raise

    return Downloaded(
        path=destination,
        bytes=byte_count,
        elapsed_seconds=time.monotonic() - started,
    )


def _discard(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        LOG.warning("Could not remove partial archive %s: %s", path, exc)
