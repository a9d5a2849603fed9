from contextlib import contextmanager
from typing import Generator, Iterator
import os

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker, declarative_base

# DATABASE_URL defaults to a local SQLite file at ./data.db.
# Override via the DATABASE_URL environment variable for staging/production.
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./data.db")

SERIALIZABLE = "SERIALIZABLE"

# Build the SQLAlchemy engine with backend-specific settings.
# - SQLite (dev/local): allow cross-thread access since it's a file-based database.
# - Server DBs (e.g., Postgres/MySQL): enable safe pooling to avoid stale or dropped connections under load.
if DATABASE_URL.startswith("sqlite"):
    engine = create_engine(DATABASE_URL, connect_args={"check_same_thread": False, "timeout": 15})

    @event.listens_for(engine, "begin")
    def _sqlite_begin_immediate(conn) -> None:
        # pysqlite defers BEGIN until the first write, which would leave the conflict
        # reads outside the transaction. Serializable units take the write lock up front.
        if conn.get_execution_options().get("isolation_level") == SERIALIZABLE:
            conn.exec_driver_sql("BEGIN IMMEDIATE")
else:
    engine = create_engine(
        DATABASE_URL,
        pool_pre_ping=True,
        pool_recycle=280,
        pool_size=10,
        max_overflow=20,
    )

# Session factory: one session per request; autocommit and autoflush disabled for explicit transaction control
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for ORM models declared via SQLAlchemy's declarative API
Base = declarative_base()


def get_db() -> Generator:
    """
    FastAPI dependency.

    Yields a database session for the lifetime of the request and guarantees it
    is closed afterwards, even if an exception is raised.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def supports_row_locks(db: Session) -> bool:
    return str(db.get_bind().dialect.name) != "sqlite"


@contextmanager
def serializable_transaction(db: Session) -> Iterator[Session]:
    """
    Run a unit of work under SERIALIZABLE isolation.

    Any transaction the session already holds (e.g. read-only lookups done by the
    caller) is committed first so the isolation level applies from the first
    statement of the unit. Commits on success, rolls back on any exception.
    Objects are expired on commit, so rows read earlier are re-read inside the unit.
    """
    if db.in_transaction():
        db.commit()
    db.connection(execution_options={"isolation_level": SERIALIZABLE})
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
