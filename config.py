import logging
import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(self, database_url: str, log_level: str) -> None:
        self.database_url = database_url
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("BUDGET_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "budget.db"
    database_url = os.getenv("BUDGET_DATABASE_URL", f"sqlite:///{default_db}")
    log_level = os.getenv("BUDGET_LOG_LEVEL", "INFO").upper()
    return Settings(database_url=database_url, log_level=log_level)


def get_log_level() -> str:
    """Return the configured level name, raising ValueError if logging
    does not know it."""
    level = os.getenv("BUDGET_LOG_LEVEL", "INFO").upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ValueError(f"Unknown log level: {level}")
    return level
