"""
Pytest configuration and shared fixtures.
"""

import pytest
from typing import Dict, Any

from jobledger.database import create_db_engine, init_database, sqlite_url
from jobledger.logger import get_logger, reset_logger
from jobledger.models import EventLedger, JobStateStore
from jobledger.transactions import TransactionManager


@pytest.fixture(autouse=True)
def quiet_logger(monkeypatch):
    """Fresh console-less logger for every test."""
    monkeypatch.delenv("JOBLEDGER_LOG_DIR", raising=False)
    reset_logger()
    logger = get_logger(level="DEBUG", enable_console=False)
    yield logger
    reset_logger()


@pytest.fixture
def db_url(tmp_path) -> str:
    """URL of a temporary SQLite database."""
    return sqlite_url(tmp_path / "test.db")


@pytest.fixture
def engine(db_url):
    """Engine with all tables created."""
    engine = init_database(create_db_engine(db_url, echo=False))
    yield engine
    engine.dispose()


@pytest.fixture
def manager(engine) -> TransactionManager:
    return TransactionManager(engine)


@pytest.fixture
def ledger(manager) -> EventLedger:
    return EventLedger(manager)


@pytest.fixture
def job_states(manager) -> JobStateStore:
    return JobStateStore(manager)


@pytest.fixture
def event_props() -> Dict[str, Any]:
    """Minimal valid event."""
    return {"name": "test", "job_id": "test", "hash": "123"}
