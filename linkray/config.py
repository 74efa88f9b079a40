"""Centralised settings for the LinkRay scanner.

All runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (one level up from the package)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)

_DEFAULT_MODELS = (
    "gemma-3-27b-it,"
    "gemma-3-12b-it,"
    "gemma-3-4b-it,"
    "gemini-2.0-flash-lite-001,"
    "gemini-3-flash-preview,"
    "gemini-exp-1206,"
    "gemini-2.5-flash,"
    "gemini-flash-latest"
)


def _split_csv(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Workspace / storage
    # ------------------------------------------------------------------
    workspace_dir: Path = field(
        default_factory=lambda: Path(
            os.environ.get("LINKRAY_WORKSPACE", Path.home() / ".linkray")
        )
    )

    @property
    def db_path(self) -> Path:
        """Absolute path to the SQLite database file."""
        return self.workspace_dir / "scans.db"

    @property
    def schema_path(self) -> Path:
        """Absolute path to the schema SQL file bundled with the package."""
        return Path(__file__).resolve().parent / "db" / "schema.sql"

    # ------------------------------------------------------------------
    # Fetching / crawling
    # ------------------------------------------------------------------
    fetch_timeout: float = field(
        default_factory=lambda: float(os.environ.get("FETCH_TIMEOUT", "8.0"))
    )
    crawl_timeout: float = field(
        default_factory=lambda: float(os.environ.get("CRAWL_TIMEOUT", "10.0"))
    )
    user_agent: str = field(
        default_factory=lambda: os.environ.get(
            "LINKRAY_USER_AGENT",
            "Mozilla/5.0 (compatible; LinkRay-Scanner/1.0; +https://github.com/linkray)",
        )
    )
    quick_scan_max_pages: int = field(
        default_factory=lambda: int(os.environ.get("QUICK_SCAN_MAX_PAGES", "10"))
    )
    deep_scan_max_pages: int = field(
        default_factory=lambda: int(os.environ.get("DEEP_SCAN_MAX_PAGES", "50"))
    )
    crawl_concurrency: int = field(
        default_factory=lambda: int(os.environ.get("CRAWL_CONCURRENCY", "1"))
    )

    # ------------------------------------------------------------------
    # Content extraction
    # ------------------------------------------------------------------
    max_content_chars: int = field(
        default_factory=lambda: int(os.environ.get("MAX_CONTENT_CHARS", "12000"))
    )
    min_content_chars: int = field(
        default_factory=lambda: int(os.environ.get("MIN_CONTENT_CHARS", "50"))
    )

    # ------------------------------------------------------------------
    # Result cache
    # ------------------------------------------------------------------
    cache_ttl_hours: float = field(
        default_factory=lambda: float(os.environ.get("CACHE_TTL_HOURS", "24"))
    )

    # ------------------------------------------------------------------
    # Classifier backends
    # ------------------------------------------------------------------
    classifier_provider: str = field(
        default_factory=lambda: os.environ.get("CLASSIFIER_PROVIDER", "openai")
    )
    classifier_models: tuple[str, ...] = field(
        default_factory=lambda: _split_csv(
            os.environ.get("CLASSIFIER_MODELS", _DEFAULT_MODELS)
        )
    )
    classifier_base_url: str = field(
        default_factory=lambda: os.environ.get(
            "CLASSIFIER_BASE_URL",
            "https://generativelanguage.googleapis.com/v1beta/openai/",
        )
    )
    classifier_api_key: str = field(
        default_factory=lambda: os.environ.get("GEMINI_API_KEY", "")
    )
    classifier_timeout: float = field(
        default_factory=lambda: float(os.environ.get("CLASSIFIER_TIMEOUT", "30.0"))
    )
    ollama_base_url: str = field(
        default_factory=lambda: os.environ.get("OLLAMA_BASE_URL", "http://localhost:11434")
    )

    # ------------------------------------------------------------------
    # Response shaping / logging
    # ------------------------------------------------------------------
    screenshot_service_url: str = field(
        default_factory=lambda: os.environ.get(
            "SCREENSHOT_SERVICE_URL", "https://api.microlink.io"
        )
    )
    log_level: str = field(
        default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO")
    )

    @property
    def cache_ttl_seconds(self) -> float:
        return self.cache_ttl_hours * 3600

    def ensure_workspace(self) -> None:
        """Create the workspace directory if it does not exist."""
        self.workspace_dir.mkdir(parents=True, exist_ok=True)


def configure_logging(level: str | None = None) -> None:
    """Apply ``settings.log_level`` to the root logger (no-op if already set up)."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


# Module-level singleton — import this everywhere:
#   from linkray.config import settings
settings = Settings()
