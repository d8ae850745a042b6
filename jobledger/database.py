"""
Table definitions and engine management.

Uses SQLAlchemy; SQLite by default, any SQLAlchemy URL otherwise.
Schema migration is handled outside this package: ``init_database`` only
creates missing tables for local use and tests.
"""

from pathlib import Path
from typing import Optional, Union

from sqlalchemy import BigInteger, Column, Index, Integer, String, Text, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from .config import load_settings

Base = declarative_base()


class Event(Base):
    """One job event. Append-mostly."""

    __tablename__ = "events"

    id = Column(String(22), primary_key=True)
    job_id = Column(String(128), nullable=False)
    hash = Column(String(32), nullable=False)
    name = Column(String(128), nullable=False)
    body_type = Column(Integer, nullable=False, default=1, server_default="1")
    body = Column(String, nullable=False, default="", server_default="")
    created_time = Column(BigInteger, nullable=False)
    updated_time = Column(BigInteger, nullable=False)

    __table_args__ = (Index("idx_events_job_id_created_time", "job_id", "created_time"),)


class JobState(Base):
    """Current state of one job."""

    __tablename__ = "job_states"

    id = Column(String(22), primary_key=True)
    job_id = Column(String(128), nullable=False)
    last_started = Column(BigInteger, nullable=False, default=0, server_default="0")
    last_finished = Column(BigInteger, nullable=False, default=0, server_default="0")
    context = Column(Text, nullable=False, default="", server_default="")
    created_time = Column(BigInteger, nullable=False)
    updated_time = Column(BigInteger, nullable=False)


def _enable_sqlite_savepoints(engine: Engine) -> None:
    # pysqlite emits its own BEGIN lazily, which breaks SAVEPOINT. Take over
    # transaction control so nested scopes work.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_db_engine(url: Optional[str] = None, echo: Optional[bool] = None) -> Engine:
    """
    Create an engine for the given URL.

    Args:
        url: SQLAlchemy database URL (default: JOBLEDGER_DATABASE_URL)
        echo: Echo SQL statements (default: JOBLEDGER_ECHO_SQL)

    Returns:
        SQLAlchemy engine
    """
    if url is None or echo is None:
        settings = load_settings()
        url = url or settings.database_url
        echo = settings.echo_sql if echo is None else echo

    engine = create_engine(url, echo=echo)
    if engine.dialect.name == "sqlite":
        _enable_sqlite_savepoints(engine)
    return engine


def sqlite_url(db_path: Path) -> str:
    return f"sqlite:///{db_path}"


def init_database(target: Union[Engine, Path, str, None] = None) -> Engine:
    """
    Create the tables if they are missing.

    Args:
        target: Engine, path to a SQLite file, or database URL

    Returns:
        The engine the tables were created on
    """
    if isinstance(target, Engine):
        engine = target
    elif isinstance(target, Path):
        engine = create_db_engine(sqlite_url(target))
    else:
        engine = create_db_engine(target)

    if engine.dialect.name == "sqlite" and engine.url.database not in (None, "", ":memory:"):
        Path(engine.url.database).parent.mkdir(parents=True, exist_ok=True)

    Base.metadata.create_all(engine)
    return engine
