from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_MLB_API_BASE = "https://statsapi.mlb.com/api/v1"


@dataclass
class AppSettings:
    """Application configuration sourced from environment variables."""

    data_root: Path
    log_level: str
    league_config: Path
    mlb_api_base: str = DEFAULT_MLB_API_BASE
    mlb_request_delay_ms: int = 20
    mlb_max_workers: int = 1
    mlb_timeout_seconds: float = 15.0

    @property
    def archive_root(self) -> Path:
        return self.data_root / "archive"

    @property
    def request_delay_seconds(self) -> float:
        return max(self.mlb_request_delay_ms, 0) / 1000.0


def _coerce_int(value: Optional[str], default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Expected integer-compatible value, got: {value!r}") from None


def _coerce_float(value: Optional[str], default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"Expected numeric value, got: {value!r}") from None


@lru_cache(maxsize=1)
def get_settings(env_path: Optional[Path | str] = None) -> AppSettings:
    """Load settings from `.env` (if present) and environment variables."""

    env_file = Path(env_path) if env_path else Path(".env")
    if env_file.exists():
        load_dotenv(env_file)

    data_root = Path(os.getenv("DATA_ROOT", "./data")).resolve()

    return AppSettings(
        data_root=data_root,
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        league_config=Path(os.getenv("LEAGUE_CONFIG", "config/league.yaml")),
        mlb_api_base=os.getenv("MLB_API_BASE", DEFAULT_MLB_API_BASE).rstrip("/"),
        mlb_request_delay_ms=_coerce_int(os.getenv("MLB_REQUEST_DELAY_MS"), 20),
        mlb_max_workers=max(1, _coerce_int(os.getenv("MLB_MAX_WORKERS"), 1)),
        mlb_timeout_seconds=_coerce_float(os.getenv("MLB_TIMEOUT_SECONDS"), 15.0),
    )


def reset_settings_cache() -> None:
    """Clear cached settings; useful for tests."""

    get_settings.cache_clear()  # type: ignore[attr-defined]
