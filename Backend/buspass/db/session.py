from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import declarative_base, sessionmaker
from buspass.core.config import settings
from buspass.core.logger import logger


def _engine_options(url: str) -> dict:
    """Build engine options; SQLite needs cross-thread access, servers get timeouts"""
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,
        "pool_timeout": settings.DB_POOL_TIMEOUT,
        "connect_args": {"connect_timeout": settings.DB_CONNECT_TIMEOUT},
    }


# Create SQLAlchemy engine
engine = create_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """
    Dependency to get database session.
    Use this in route dependencies.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """Initialize database - create all tables"""
    # Models must be registered with Base before create_all
    from buspass.db import models  # noqa: F401

    bind = bind or engine
    Base.metadata.create_all(bind=bind)

    tables = inspect(bind).get_table_names()
    logger.info(f"Database tables ready: {tables}")

    if not tables:
        raise RuntimeError("Failed to create database tables!")
