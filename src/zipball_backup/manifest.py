from __future__ import annotations

import dataclasses
import json
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

MANIFEST_FILENAME = "manifest.json"


@dataclass
class RepositoryManifest:
    name: str
    full_name: str
    updated_at: str
    default_branch: str
    status: str = "pending"
    archive_path: str = ""
    bytes: Optional[int] = None
    error: str = ""


@dataclass
class Manifest:
    owner: str
    owner_type: str
    started_at: datetime
    completed_at: datetime
    repositories: List[RepositoryManifest]
    errors: List[str] = field(default_factory=list)
    schema_version: str = "1.0.0"

    def to_dict(self) -> Dict:
        return {
            "schema_version": self.schema_version,
            "owner": self.owner,
            "owner_type": self.owner_type,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
            "repositories": [dataclasses.asdict(repo) for repo in self.repositories],
            "errors": self.errors,
        }

    def write(self, path: Path) -> None:
        staging = path.with_name(path.name + ".tmp")
        try:
            with staging.open("w", encoding="utf-8") as fh:
                json.dump(self.to_dict(), fh, indent=2)
            os.replace(staging, path)
        except BaseException:
            staging.unlink(missing_ok=True)
            raise
