"""Runtime configuration for the task store, monitor and command surface."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DATA_DIR_NAME = ".agent-tasks"
DB_FILE_NAME = "tasks.db"


@dataclass(slots=True)
class RetentionSettings:
    """Automatic cleanup of finished tasks."""

    completed_retention_seconds: int = 3_600


@dataclass(slots=True)
class MonitorSettings:
    """Process monitor polling and idle heuristics."""

    poll_interval_seconds: float = 5.0
    idle_threshold_seconds: float = 60.0
    idle_root_only: bool = False


@dataclass(slots=True)
class DisplaySettings:
    """Terminal listing settings."""

    watch_interval_seconds: float = 2.0


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(DB_FILE_NAME)
    sqlite_busy_timeout_ms: int = 5_000
    log_level: str = "WARNING"
    retention: RetentionSettings = field(default_factory=RetentionSettings)
    monitor: MonitorSettings = field(default_factory=MonitorSettings)
    display: DisplaySettings = field(default_factory=DisplaySettings)

    @property
    def data_dir(self) -> Path:
        return self.db_path.parent

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment; the store lives under $HOME by default."""

        return cls(
            db_path=db_path or _resolve_db_path(),
            sqlite_busy_timeout_ms=int(os.getenv("AGENT_INBOX_SQLITE_BUSY_TIMEOUT_MS", "5000")),
            log_level=os.getenv("AGENT_INBOX_LOG_LEVEL", "WARNING").strip().upper(),
            retention=RetentionSettings(
                completed_retention_seconds=int(
                    os.getenv("AGENT_INBOX_RETENTION_SECONDS", "3600"),
                ),
            ),
            monitor=MonitorSettings(
                poll_interval_seconds=float(os.getenv("AGENT_INBOX_MONITOR_POLL_SECONDS", "5.0")),
                idle_threshold_seconds=float(
                    os.getenv("AGENT_INBOX_IDLE_THRESHOLD_SECONDS", "60.0"),
                ),
                idle_root_only=_env_bool("AGENT_INBOX_IDLE_ROOT_ONLY", default=False),
            ),
            display=DisplaySettings(
                watch_interval_seconds=float(os.getenv("AGENT_INBOX_WATCH_SECONDS", "2.0")),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for values the monitor and store cannot work with."""

        if self.retention.completed_retention_seconds < 0:
            raise ValueError("AGENT_INBOX_RETENTION_SECONDS must be >= 0.")
        if self.monitor.poll_interval_seconds <= 0:
            raise ValueError("AGENT_INBOX_MONITOR_POLL_SECONDS must be > 0.")
        if self.monitor.idle_threshold_seconds <= 0:
            raise ValueError("AGENT_INBOX_IDLE_THRESHOLD_SECONDS must be > 0.")
        if self.display.watch_interval_seconds <= 0:
            raise ValueError("AGENT_INBOX_WATCH_SECONDS must be > 0.")
        if self.sqlite_busy_timeout_ms <= 0:
            raise ValueError("AGENT_INBOX_SQLITE_BUSY_TIMEOUT_MS must be > 0.")


def default_db_path() -> Path:
    """Store location derived from the user's home directory."""

    home = os.getenv("HOME", "").strip()
    if not home:
        raise ValueError("HOME environment variable is not set; cannot locate task store.")
    return Path(home) / DATA_DIR_NAME / DB_FILE_NAME


def ensure_data_dir(db_path: Path) -> Path:
    """Create the store directory if it does not exist yet."""

    db_path.parent.mkdir(parents=True, exist_ok=True)
    return db_path.parent


def _resolve_db_path() -> Path:
    override = os.getenv("AGENT_INBOX_DB_PATH", "").strip()
    if override:
        return Path(override).expanduser()
    return default_db_path()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
