from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from croniter import CroniterBadCronError, croniter
from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ConfigurationError
from .github.api import DEFAULT_API_URL
from .github.archive import CHUNK_SIZE
from .github.listing import OwnerType
from .logger import DEFAULT_LOG_FILE

DEFAULT_TOKEN_ENV = "GITHUB_TOKEN"
DEFAULT_OUTPUT_DIR = "data"


class AuthConfig(BaseModel):
    token: Optional[str] = Field(default=None, description="Explicit token string (discouraged).")
    token_env: Optional[str] = Field(default=DEFAULT_TOKEN_ENV, description="Environment variable containing token.")

    def resolved_token(self) -> Optional[str]:
        """Explicit token, then ``token_env``, then ``$GITHUB_TOKEN`` as the last resort."""
        if self.token:
            return self.token
        if self.token_env:
            value = os.getenv(self.token_env)
            if value:
                return value
        return os.getenv(DEFAULT_TOKEN_ENV) or None


class LoggingConfig(BaseModel):
    level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL") or "INFO", validate_default=True)
    file: Optional[Path] = Path(DEFAULT_LOG_FILE)

    @field_validator("level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()


class SchedulerConfig(BaseModel):
    cron: str
    timezone: str = "UTC"
    run_on_startup: bool = True

    @field_validator("cron")
    @classmethod
    def _validate_cron(cls, value: str) -> str:
        try:
            croniter(value, datetime.now())
        except (CroniterBadCronError, ValueError) as exc:
            raise ValueError(f"Invalid cron expression '{value}': {exc}") from exc
        return value

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone '{value}'") from exc
        return value

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def next_run(self, after: datetime) -> datetime:
        return croniter(self.cron, after).get_next(datetime)


class BackupConfig(BaseModel):
    owner: str = Field(min_length=1)
    owner_type: OwnerType = OwnerType.USER
    output_dir: Path = Path(DEFAULT_OUTPUT_DIR)
    auth: AuthConfig = AuthConfig()
    api_url: str = DEFAULT_API_URL
    request_timeout: Optional[float] = Field(default=None, gt=0)
    chunk_size: int = Field(default=CHUNK_SIZE, gt=0)
    write_manifest: bool = True
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    scheduler: Optional[SchedulerConfig] = None

    @field_validator("owner_type", mode="before")
    @classmethod
    def _parse_owner_type(cls, value: Any) -> OwnerType:
        return OwnerType.parse(value)

    @field_validator("output_dir")
    @classmethod
    def _expand_output_dir(cls, value: Path) -> Path:
        return value.expanduser()


def read_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            raw = yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Configuration file {path} is not valid YAML: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Configuration file {path} must contain a mapping")
    return raw


def build_config(data: Optional[Mapping[str, Any]] = None, overrides: Optional[Mapping[str, Any]] = None) -> BackupConfig:
    """Validate ``data`` with non-``None`` ``overrides`` applied on top."""
    merged: Dict[str, Any] = dict(data or {})
    for key, value in (overrides or {}).items():
        if value is None:
            continue
        if isinstance(value, Mapping):
            nested = dict(merged.get(key) or {})
            nested.update({k: v for k, v in value.items() if v is not None})
            merged[key] = nested
        else:
            merged[key] = value

    try:
        return BackupConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigurationError(str(exc)) from exc


def load_config(path: Path, overrides: Optional[Mapping[str, Any]] = None) -> BackupConfig:
    return build_config(read_config_file(path), overrides)
