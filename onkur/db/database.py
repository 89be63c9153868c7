"""
Database connection and session management
"""
import logging
from contextlib import contextmanager
from typing import Any, Dict, Generator, Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from onkur.config import settings

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> Dict[str, Any]:
    if url.startswith("sqlite"):
        # Local runs and tests share one in-process connection
        return {"connect_args": {"check_same_thread": False}, "poolclass": StaticPool}
    return {"pool_pre_ping": True, "pool_size": 10, "max_overflow": 20}


engine = create_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db_session() -> Generator[Session, None, None]:
    """Get a new database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# Alias for compatibility
get_db = get_db_session


def upsert(db: Session, model, values: Dict[str, Any], keys, updates: Optional[Dict[str, Any]] = None) -> None:
    """
    INSERT a row or, when one with the same keys exists, apply updates to it
    (or leave it alone when there are no updates).

    Runs as a single ON CONFLICT statement so concurrent first writers do not
    race on the primary key. Supports PostgreSQL and SQLite.
    """
    dialect = postgresql if db.get_bind().dialect.name == "postgresql" else sqlite
    stmt = dialect.insert(model).values(**values)
    if updates:
        stmt = stmt.on_conflict_do_update(index_elements=list(keys), set_=updates)
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=list(keys))
    db.execute(stmt)


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Run a unit of work: commit on success, roll back and re-raise on error"""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
