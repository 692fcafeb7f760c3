"""Engine and session factory for the ledger database.

SQLite runs with foreign keys on and a busy timeout, so a writer that
finds the file locked waits instead of failing; version conflicts are
then caught by the optimistic check on ``inventory_records.version``.
An in-memory URL shares one connection across threads.
"""

from collections.abc import Generator
from typing import Annotated, Any, Dict

from fastapi import Depends
from sqlalchemy import create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from stockledger.core.config import settings


def engine_options(database_url: str) -> Dict[str, Any]:
    """create_engine keyword arguments for ``database_url``."""
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return {
            "pool_size": settings.db_pool_size,
            "max_overflow": settings.db_max_overflow,
            "pool_pre_ping": True,
        }

    options: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    if url.database in (None, "", ":memory:"):
        options["poolclass"] = StaticPool
    return options


engine = create_engine(
    settings.database_url,
    echo=settings.debug and settings.log_level == "DEBUG",
    **engine_options(settings.database_url),
)

if engine.dialect.name == "sqlite":
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute(f"PRAGMA busy_timeout={settings.sqlite_busy_timeout_ms}")
        cursor.close()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


DbSession = Annotated[Session, Depends(get_db)]
