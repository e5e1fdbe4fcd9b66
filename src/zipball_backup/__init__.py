"""Zipball backup of every repository owned by a GitHub user or organization."""

from __future__ import annotations

__version__ = "1.0.0"

from .config import BackupConfig, load_config  # noqa: E402,F401
from .orchestrator import BackupOrchestrator, RunSummary  # noqa: E402,F401
