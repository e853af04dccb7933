# database.py
import logging
import time
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker, declarative_base

from config import settings
from errors import NotFound

logger = logging.getLogger(__name__)

# sqlite needs check_same_thread off when the session crosses threadpool workers
connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(settings.DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

# DB session dependency
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db):
    """Commit on success, roll back everything on any exception."""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


def get_or_404(db, model, pk, message=None):
    obj = db.get(model, pk)
    if obj is None:
        raise NotFound(message or f"{model.__name__} not found.")
    return obj


def lock_row(db, model, pk):
    """Re-read a row under ``FOR UPDATE``, overwriting whatever the session already holds."""
    return db.query(model).filter_by(id=pk).populate_existing().with_for_update().one()


def init_db(bind=None, retries=None, delay=2):
    """Create all tables, waiting for the database to come up."""
    import models  # noqa: F401  registers the mappers on Base.metadata

    bind = bind or engine
    attempts = retries if retries is not None else settings.DB_CONNECT_RETRIES
    for attempt in range(1, attempts + 1):
        try:
            Base.metadata.create_all(bind=bind)
            logger.info("Database ready")
            return
        except OperationalError:
            if attempt == attempts:
                raise
            logger.warning("Waiting for database (%d/%d)...", attempt, attempts)
            time.sleep(delay)
