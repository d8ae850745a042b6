"""
Runtime settings.

Values come from the process environment, after loading a ``.env`` file from
the working directory if one exists.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_DATABASE_URL = "sqlite:///data/jobledger.db"


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    log_level: str = "INFO"
    log_dir: Optional[Path] = None
    echo_sql: bool = False


def load_env() -> None:
    """Load .env from the working directory if present."""
    env_path = Path.cwd() / ".env"
    if env_path.exists():
        load_dotenv(dotenv_path=env_path)


def load_settings() -> Settings:
    """
    Build Settings from the environment.

    Recognized variables:
        JOBLEDGER_DATABASE_URL: SQLAlchemy URL (default: sqlite:///data/jobledger.db)
        JOBLEDGER_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR or CRITICAL
        JOBLEDGER_LOG_DIR: directory for daily log files (unset = console only)
        JOBLEDGER_ECHO_SQL: "1" to echo SQL statements
    """
    load_env()
    log_dir = os.getenv("JOBLEDGER_LOG_DIR", "").strip()
    return Settings(
        database_url=os.getenv("JOBLEDGER_DATABASE_URL", "").strip() or DEFAULT_DATABASE_URL,
        log_level=os.getenv("JOBLEDGER_LOG_LEVEL", "").strip().upper() or "INFO",
        log_dir=Path(log_dir) if log_dir else None,
        echo_sql=os.getenv("JOBLEDGER_ECHO_SQL", "").strip() == "1",
    )
