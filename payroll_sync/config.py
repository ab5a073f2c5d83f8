"""
Payroll Sync Configuration

Environment-driven configuration resolved once at startup:
- `.env` loading (never overrides variables already set)
- Typed, frozen settings passed by reference into every component
- Validation of enumerated and numeric values

Usage:
    from payroll_sync.config import SyncConfig

    config = SyncConfig.from_env()
    config.storage_mode   # StorageMode.AUTO
    config.state_file     # Path("data/payroll-state.json")
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional, Tuple
import logging

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

PACKAGE_DIR = Path(__file__).resolve().parent
DEFAULT_STATIC_ROOT = PACKAGE_DIR / "static"
STATE_FILE_NAME = "payroll-state.json"
INDEX_FILE_NAME = "Driver_Payroll.html"

TRUTHY = {"1", "true", "yes", "on"}


class ConfigurationError(ValueError):
    """Raised when an environment value cannot be used."""
    pass


class StorageMode(str, Enum):
    """Where the payroll state is persisted."""
    POSTGRES = "postgres"
    FILE = "file"
    AUTO = "auto"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "StorageMode":
        value = (raw or cls.AUTO.value).strip().lower()
        try:
            return cls(value)
        except ValueError:
            allowed = ", ".join(mode.value for mode in cls)
            raise ConfigurationError(
                f"Unknown STORAGE_MODE {raw!r} (expected one of: {allowed})"
            ) from None


@dataclass(frozen=True)
class ExportConfig:
    """Google Sheets export settings."""
    spreadsheet_id: Optional[str] = None
    tab: str = "Backups"
    service_account_json: Optional[str] = None
    service_account_email: Optional[str] = None
    private_key: Optional[str] = None
    cron: str = "0 * * * *"
    run_on_startup: bool = False

    @property
    def enabled(self) -> bool:
        return bool(self.spreadsheet_id)


@dataclass(frozen=True)
class SyncConfig:
    """
    Process-wide settings.

    Built once by `from_env()` and never re-read; components receive the
    instance (or the pieces they need) explicitly.
    """
    host: str = "0.0.0.0"
    port: int = 3000
    data_dir: Path = field(default_factory=lambda: Path("data"))
    storage_mode: StorageMode = StorageMode.AUTO
    database_url: Optional[str] = None
    pg_ssl_mode: Optional[str] = None
    pg_connect_retries: int = 3
    pg_retry_delay: float = 1.0
    static_root: Path = DEFAULT_STATIC_ROOT
    cors_origins: Tuple[str, ...] = ("*",)
    log_level: str = "INFO"
    log_dir: Optional[Path] = None
    export: ExportConfig = field(default_factory=ExportConfig)

    @property
    def state_file(self) -> Path:
        return self.data_dir / STATE_FILE_NAME

    @property
    def index_file(self) -> Path:
        return self.static_root / INDEX_FILE_NAME

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        load_env_file: bool = True,
    ) -> "SyncConfig":
        """
        Resolve configuration from environment variables.

        Args:
            environ: Mapping to read instead of os.environ (tests)
            load_env_file: Load a `.env` file first (ignored when environ is given)

        Raises:
            ConfigurationError: If a value is present but unusable
        """
        if environ is None:
            if load_env_file:
                load_dotenv(override=False)
            environ = os.environ

        def get(name: str) -> Optional[str]:
            value = environ.get(name)
            if value is None:
                return None
            value = value.strip()
            return value or None

        export = ExportConfig(
            spreadsheet_id=get("GOOGLE_SHEETS_SPREADSHEET_ID"),
            tab=get("GOOGLE_SHEETS_BACKUP_TAB") or "Backups",
            service_account_json=get("GOOGLE_SERVICE_ACCOUNT_JSON"),
            service_account_email=get("GOOGLE_SERVICE_ACCOUNT_EMAIL"),
            private_key=get("GOOGLE_PRIVATE_KEY"),
            cron=get("BACKUP_CRON") or "0 * * * *",
            run_on_startup=(get("BACKUP_RUN_ON_STARTUP") or "").lower() in TRUTHY,
        )

        origins = tuple(
            origin.strip()
            for origin in (get("CORS_ORIGINS") or "*").split(",")
            if origin.strip()
        )

        log_dir = get("LOG_DIR")

        return cls(
            host=get("HOST") or "0.0.0.0",
            port=_parse_int("PORT", get("PORT"), 3000, minimum=1),
            data_dir=Path(get("DATA_DIR") or "data"),
            storage_mode=StorageMode.parse(get("STORAGE_MODE")),
            database_url=get("DATABASE_URL"),
            pg_ssl_mode=get("PGSSLMODE"),
            pg_connect_retries=_parse_int(
                "PG_CONNECT_RETRIES", get("PG_CONNECT_RETRIES"), 3, minimum=1
            ),
            static_root=Path(get("STATIC_ROOT") or DEFAULT_STATIC_ROOT),
            cors_origins=origins or ("*",),
            log_level=(get("LOG_LEVEL") or "INFO").upper(),
            log_dir=Path(log_dir) if log_dir else None,
            export=export,
        )

    def describe(self) -> dict:
        """Non-secret summary for startup logs."""
        return {
            "host": self.host,
            "port": self.port,
            "storage_mode": self.storage_mode.value,
            "data_dir": str(self.data_dir),
            "database_configured": bool(self.database_url),
            "export_enabled": self.export.enabled,
            "export_cron": self.export.cron if self.export.enabled else None,
        }


def _parse_int(name: str, raw: Optional[str], default: int, minimum: int = 0) -> int:
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")
    return value
