"""
WinTidy configuration management.

Provides centralized configuration with validation using Pydantic.
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, Field, field_validator

from wintidy.core.defaults import (
    DEFAULT_BLOATWARE_PATTERNS,
    DEFAULT_CHOCOLATEY_ALIASES,
    DEFAULT_ESSENTIAL_PATTERNS,
)
from wintidy.core.models import Origin

if TYPE_CHECKING:
    from wintidy.reconcile.snapshot import SnapshotKind


def _default_data_directory() -> Path:
    return Path.home() / ".wintidy"


def default_config_path() -> Path:
    """Where the configuration file lives unless one is given explicitly."""
    return _default_data_directory() / "config.json"


def merge_patterns(*groups: list[str], exclude: list[str] | None = None) -> list[str]:
    """Merge pattern groups in order, dropping case-insensitive duplicates."""
    excluded = {p.strip().casefold() for p in exclude or [] if p.strip()}
    seen: set[str] = set()
    merged: list[str] = []
    for group in groups:
        for pattern in group:
            pattern = pattern.strip()
            key = pattern.casefold()
            if not pattern or key in seen or key in excluded:
                continue
            seen.add(key)
            merged.append(pattern)
    return merged


class LoggingConfig(BaseModel):
    """Configuration for structured logging."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    file_enabled: bool = True
    console_enabled: bool = True
    json_format: bool = False
    log_directory: Path = Field(default_factory=lambda: _default_data_directory() / "logs")

    @field_validator("log_directory", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path) -> Path:
        return Path(v).expanduser().resolve()


class TimeoutConfig(BaseModel):
    """Per-operation timeouts in seconds."""

    package_seconds: int = Field(default=300, ge=10, le=7200)
    long_operation_seconds: int = Field(default=3600, ge=60, le=86400)
    query_seconds: int = Field(default=120, ge=5, le=3600)


class ExecutionConfig(BaseModel):
    """Configuration for the action executor."""

    max_workers: int = Field(default=8, ge=1, le=32)
    dry_run: bool = False
    verify_before_action: bool = True


class DiffConfig(BaseModel):
    """Policy applied on top of the computed diff."""

    full_scan_policy: Literal["never", "when_empty", "always"] = "never"


class BloatwareConfig(BaseModel):
    """Removal targets."""

    builtin_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_BLOATWARE_PATTERNS)
    )
    custom_patterns: list[str] = Field(default_factory=list)
    excluded_patterns: list[str] = Field(default_factory=list)

    @property
    def patterns(self) -> list[str]:
        return merge_patterns(
            self.builtin_patterns,
            self.custom_patterns,
            exclude=self.excluded_patterns,
        )


class EssentialsConfig(BaseModel):
    """Applications required to be present."""

    builtin_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ESSENTIAL_PATTERNS)
    )
    custom_patterns: list[str] = Field(default_factory=list)
    excluded_patterns: list[str] = Field(default_factory=list)
    chocolatey_aliases: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_CHOCOLATEY_ALIASES)
    )

    @property
    def patterns(self) -> list[str]:
        return merge_patterns(
            self.builtin_patterns,
            self.custom_patterns,
            exclude=self.excluded_patterns,
        )


class SourcesConfig(BaseModel):
    """Which inventory sources to collect from."""

    enabled: list[str] = Field(default_factory=lambda: [o.value for o in Origin])

    @field_validator("enabled")
    @classmethod
    def validate_origins(cls, v: list[str]) -> list[str]:
        for value in v:
            Origin.from_string(value)
        return v

    @property
    def origins(self) -> list[Origin]:
        return [Origin.from_string(value) for value in self.enabled]


class WinTidyConfig(BaseModel):
    """Main WinTidy configuration."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    diff: DiffConfig = Field(default_factory=DiffConfig)
    bloatware: BloatwareConfig = Field(default_factory=BloatwareConfig)
    essentials: EssentialsConfig = Field(default_factory=EssentialsConfig)
    sources: SourcesConfig = Field(default_factory=SourcesConfig)
    snapshot_directory: Path = Field(
        default_factory=lambda: _default_data_directory() / "snapshots"
    )
    report_directory: Path = Field(
        default_factory=lambda: _default_data_directory() / "reports"
    )

    @field_validator("snapshot_directory", "report_directory", mode="before")
    @classmethod
    def expand_directory(cls, v: str | Path) -> Path:
        return Path(v).expanduser().resolve()

    @classmethod
    def load(cls, config_path: Path | None = None) -> WinTidyConfig:
        """Load configuration from file or create default."""
        if config_path is None:
            config_path = default_config_path()

        if config_path.exists():
            with open(config_path, encoding="utf-8") as f:
                data = json.load(f)
            return cls.model_validate(data)

        return cls()

    def save(self, config_path: Path | None = None) -> None:
        """Save configuration to file."""
        if config_path is None:
            config_path = default_config_path()

        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)

    def ensure_directories(self) -> None:
        """Create all required directories."""
        self.logging.log_directory.mkdir(parents=True, exist_ok=True)
        self.snapshot_directory.mkdir(parents=True, exist_ok=True)
        self.report_directory.mkdir(parents=True, exist_ok=True)

    def get_report_file(self) -> Path:
        """Get path for a new audit report file."""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        return self.report_directory / f"report_{timestamp}.json"

    def snapshot_path(self, kind: SnapshotKind) -> Path:
        """Well-known snapshot location for one reconciliation purpose."""
        return self.snapshot_directory / f"{kind.value}_snapshot.json"


def get_default_config() -> WinTidyConfig:
    """Get the default configuration."""
    return WinTidyConfig()


def load_config(config_path: Path | None = None) -> WinTidyConfig:
    """Load or create configuration."""
    config = WinTidyConfig.load(config_path)
    config.ensure_directories()
    return config
