from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    database_url: str
    log_level: str
    status_config_path: str | None


def get_settings() -> Settings:
    database_url = os.getenv("DATABASE_URL", "sqlite:///./curriculum_rollup.db")
    log_level = os.getenv("ROLLUP_LOG_LEVEL", "INFO").strip().upper() or "INFO"
    status_config_path = os.getenv("ROLLUP_STATUS_CONFIG_PATH") or None
    return Settings(
        database_url=database_url,
        log_level=log_level,
        status_config_path=status_config_path,
    )
