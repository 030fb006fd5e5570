from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from rentcircle.config import database_url
from rentcircle.errors import PersistenceFailure


ENGINE = create_engine(database_url(), pool_pre_ping=True, future=True)
SessionLocal = sessionmaker(bind=ENGINE, class_=Session, expire_on_commit=False, autoflush=False, autocommit=False)


@contextmanager
def session_scope():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def commit(db: Session) -> None:
    """Commit now, surfacing store errors as PersistenceFailure (no retry)."""
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceFailure(f"Database write failed: {type(e).__name__}") from e
