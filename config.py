from __future__ import annotations
import logging
import os
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

load_dotenv()


def _get_list(key: str, default: str) -> List[str]:
    raw = os.getenv(key, default)
    return [x.strip() for x in raw.split(",") if x.strip()]


@dataclass(frozen=True)
class Settings:
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Used when the settings row is missing or carries no capacity
    default_slot_capacity: int = int(os.getenv("DEFAULT_SLOT_CAPACITY", "2"))
    settings_row_id: int = int(os.getenv("SETTINGS_ROW_ID", "1"))
    panel_name: str = os.getenv("PANEL_NAME", "Tipsoi CST")

    cors_origins: List[str] = field(default_factory=lambda: _get_list("CORS_ORIGINS", "*"))


settings = Settings()


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
