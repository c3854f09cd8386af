"""Settings management for environment-driven configuration."""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from storage.models import LayoutPolicy


@dataclass
class Settings:
    """Runtime configuration loaded from environment variables."""

    db_path: str
    export_root: str
    log_dir: str
    telegram_bot_token: Optional[str] = None
    environment: str = "dev"
    debug_mode: bool = False
    default_layout: LayoutPolicy = LayoutPolicy.FLAT
    max_traversal_depth: int = 100
    collision_marker: str = "*"
    max_upload_size_mb: int = 20
    export_retention_days: Optional[int] = None
    cleanup_poll_interval_seconds: int = 3600


def _get_bool(value: Optional[str], default: bool = False) -> bool:
    """Convert common truthy/falsy strings to boolean values."""

    if value is None:
        return default
    normalized = value.strip().lower()
    return normalized in {"1", "true", "yes", "on"}


def _get_int(value: Optional[str], default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _get_optional_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _get_layout(value: Optional[str], default: LayoutPolicy) -> LayoutPolicy:
    if not value:
        return default
    normalized = value.strip().upper()
    if normalized in {"DIRECTORY", "DIR", "NESTED"}:
        return LayoutPolicy.DIRECTORY_STRUCTURE
    try:
        return LayoutPolicy(normalized)
    except ValueError:
        return default


def _get_marker(value: Optional[str], default: str = "*") -> str:
    # A single character keeps successive collision markers distinct.
    if not value or len(value.strip()) != 1:
        return default
    return value.strip()


def load_settings(*, require_token: bool = True) -> Settings:
    """Load settings from environment variables with validation."""

    base_dir = Path(os.getenv("APP_BASE_DIR", Path.cwd()))

    telegram_bot_token = os.getenv("TELEGRAM_BOT_TOKEN")
    if require_token and not telegram_bot_token:
        raise RuntimeError("Missing TELEGRAM_BOT_TOKEN")

    db_path = Path(os.getenv("DB_PATH", base_dir / "db.sqlite3"))
    export_root = Path(os.getenv("EXPORT_ROOT", base_dir / "exports"))
    log_dir = Path(os.getenv("LOG_DIR", base_dir / "logs"))

    export_root.mkdir(parents=True, exist_ok=True)

    return Settings(
        db_path=str(db_path),
        export_root=str(export_root),
        log_dir=str(log_dir),
        telegram_bot_token=telegram_bot_token,
        environment=os.environ.get("ENVIRONMENT", "dev"),
        debug_mode=_get_bool(os.environ.get("DEBUG_MODE"), False),
        default_layout=_get_layout(os.environ.get("DEFAULT_LAYOUT"), LayoutPolicy.FLAT),
        max_traversal_depth=_get_int(os.environ.get("MAX_TRAVERSAL_DEPTH"), 100),
        collision_marker=_get_marker(os.environ.get("COLLISION_MARKER")),
        max_upload_size_mb=_get_int(os.environ.get("MAX_UPLOAD_SIZE_MB"), 20),
        export_retention_days=_get_optional_int(os.environ.get("EXPORT_RETENTION_DAYS")),
        cleanup_poll_interval_seconds=_get_int(
            os.environ.get("CLEANUP_POLL_INTERVAL_SECONDS"), 3600
        ),
    )
