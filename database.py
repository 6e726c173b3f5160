"""
Database connection and session management for MedAdhere
"""

import logging
from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from sqlalchemy.pool import StaticPool
from contextlib import contextmanager
from typing import Any, Callable, Dict, Generator, Optional

from config import TableNames, settings


logger = logging.getLogger(__name__)

# Uniqueness guards the dose ledger relies on for concurrent upserts
LEDGER_GUARDS = ("uq_adherence_dose", "uq_adherence_label_dose")


def create_db_engine(url: str, echo: bool = False) -> Engine:
    """
    Build an engine for ``url``.

    SQLite gets a single shared connection (so in-memory databases survive
    across sessions) with foreign keys switched on; ledger cascades depend
    on them.
    """
    if not url.startswith("sqlite"):
        return create_engine(
            url,
            echo=echo,
            pool_size=10,
            max_overflow=20,
            pool_pre_ping=True
        )

    sqlite_engine = create_engine(
        url,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=echo
    )

    @event.listens_for(sqlite_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return sqlite_engine


engine = create_db_engine(settings.DATABASE_URL, settings.DATABASE_ECHO)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)

# Base class for ORM models
Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session for FastAPI routes"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_context(
    session_factory: Optional[Callable[[], Session]] = None
) -> Generator[Session, None, None]:
    """
    Session for background jobs and service calls made without a request
    session. Commits on success, rolls back on error.

    Usage:
        with get_db_context() as db:
            db.query(AdherenceRecord).all()
    """
    db = (session_factory or SessionLocal)()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db() -> None:
    """Create every table and index defined in models"""
    # Import models to register them with Base
    import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info(f"Database initialized at: {settings.DATABASE_URL}")


def drop_db() -> None:
    """
    Drop all database tables.
    WARNING: This deletes every prescription and the whole dose ledger!
    """
    Base.metadata.drop_all(bind=engine)
    logger.warning("All database tables dropped")


class DatabaseHealthCheck:
    """Connectivity and ledger schema checks for /health"""

    @staticmethod
    def missing_ledger_guards(bind: Optional[Engine] = None) -> list:
        """Names from LEDGER_GUARDS not present on the adherence table"""
        inspector = inspect(bind or engine)
        if not inspector.has_table(TableNames.ADHERENCE_RECORDS):
            return list(LEDGER_GUARDS)

        present = {c["name"] for c in inspector.get_unique_constraints(TableNames.ADHERENCE_RECORDS)}
        present.update(
            i["name"] for i in inspector.get_indexes(TableNames.ADHERENCE_RECORDS) if i.get("unique")
        )
        return [name for name in LEDGER_GUARDS if name not in present]

    @classmethod
    def check(cls, bind: Optional[Engine] = None) -> Dict[str, Any]:
        target = bind or engine
        try:
            with target.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception:
            logger.exception("Database health check failed")
            return {"status": "down", "missing_ledger_guards": list(LEDGER_GUARDS)}

        missing = cls.missing_ledger_guards(target)
        if missing:
            logger.warning(f"Dose ledger is missing uniqueness guards: {', '.join(missing)}")
        return {"status": "up", "missing_ledger_guards": missing}


# Export commonly used items
__all__ = [
    "engine",
    "SessionLocal",
    "Base",
    "create_db_engine",
    "get_db",
    "get_db_context",
    "init_db",
    "drop_db",
    "DatabaseHealthCheck"
]
