"""Database connection and session management."""
from collections.abc import Generator
from contextlib import contextmanager
import logging

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from sessionguard.config import get_settings
from sessionguard.errors import SessionStoreError

logger = logging.getLogger(__name__)
settings = get_settings()

# SQLite requires check_same_thread=False for FastAPI
connect_args = {"check_same_thread": False} if "sqlite" in settings.database_url else {}

engine = create_engine(
    settings.database_url,
    connect_args=connect_args,
    pool_pre_ping=True,
    echo=settings.debug,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Dependency that provides a database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def store_transaction(db: Session, operation: str) -> Generator[Session, None, None]:
    """Run a unit of work that commits as a whole or not at all.

    Store failures roll back every statement issued inside the block and
    surface as SessionStoreError.
    """
    try:
        yield db
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(f"{operation} rolled back: {exc}")
        raise SessionStoreError(f"{operation} failed") from exc
    except Exception:
        db.rollback()
        raise
