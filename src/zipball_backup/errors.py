from __future__ import annotations

from typing import Optional


class BackupError(Exception):
    """Base class for errors raised by the backup pipeline."""


class ConfigurationError(BackupError):
    """Raised when the backup configuration or credential is invalid."""


class ApiError(BackupError):
    """Raised when GitHub answers with a non-success status."""

    def __init__(self, status: int, repo: Optional[str] = None, message: Optional[str] = None) -> None:
        self.status = status
        self.repo = repo
        if message is None:
            target = f" for {repo}" if repo else ""
            message = f"GitHub API request failed{target}: HTTP {status}"
        super().__init__(message)


class DecodeError(BackupError):
    """Raised when a listing page cannot be decoded into repository descriptors."""


class StorageError(BackupError):
    """Raised when the local filesystem cannot be created or written."""


class TransportError(BackupError):
    """Raised when a request fails below the HTTP layer (connection, timeout, broken stream)."""
