"""
Database configuration and session management
"""
import logging
from pathlib import Path
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from companion.core.config import get_settings
from companion.core.logging_config import LoggingConfig

logger = LoggingConfig.get_logger(__name__)

# Lazy initialization - don't create engine at module level
_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None

# Base class for models (can be created immediately)
Base = declarative_base()


def _engine_kwargs(database_url: str) -> dict:
    """Connection options per backend"""
    settings = get_settings()
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False, "timeout": 5}}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            # One shared connection so every session sees the same in-memory database
            kwargs["poolclass"] = StaticPool
        return kwargs
    return {
        "pool_size": settings.database_pool_size,
        "max_overflow": settings.database_max_overflow,
        "pool_pre_ping": True,
        "connect_args": {
            "connect_timeout": 5,
            "options": "-c statement_timeout=5000",
        } if "postgresql" in database_url else {},
    }


def get_engine() -> Engine:
    """Get or create database engine (lazy initialization)"""
    global _engine
    if _engine is None:
        settings = get_settings()
        database_url = settings.database_url

        if database_url.startswith("sqlite:///") and ":memory:" not in database_url:
            db_path = Path(database_url[len("sqlite:///"):])
            db_path.parent.mkdir(parents=True, exist_ok=True)

        _engine = create_engine(database_url, echo=settings.log_sqlalchemy, **_engine_kwargs(database_url))

        if not settings.log_sqlalchemy:
            sqlalchemy_logger = logging.getLogger("sqlalchemy.engine")
            sqlalchemy_logger.setLevel(logging.WARNING)
            sqlalchemy_logger.propagate = False

        logger.info(
            "Database engine created",
            extra={"dialect": _engine.dialect.name}
        )

    return _engine


def get_session_local() -> sessionmaker:
    """Get or create session factory (lazy initialization)"""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
    return _SessionLocal


def reset_engine():
    """Dispose the engine and session factory so the next access rebuilds them from settings"""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


def init_db():
    """Create all tables registered on Base.metadata"""
    import companion.models  # noqa: F401

    Base.metadata.create_all(bind=get_engine())

