"""
Database configuration and session management.
Backs the conversation recorder; live session state never touches it.

Version: 1.0.0
"""
import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import settings

logger = logging.getLogger(__name__)

# Create declarative base
Base = declarative_base()

# Global engine and session factory
_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None
_init_lock = threading.Lock()

REQUIRED_TABLES = ("livechat_conversations", "livechat_session_logs", "admin_push_tokens")


def _enable_sqlite_wal_mode(dbapi_connection, connection_record):
    """Enable WAL mode for SQLite for better concurrency."""
    try:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()
    except Exception as e:
        logger.warning(f"Failed to enable SQLite optimizations: {e}")


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine for ``database_url``.

    SQLite files get WAL mode; ``sqlite://`` (in-memory) shares one
    connection so every session sees the same tables.
    """
    if database_url.startswith("sqlite"):
        in_memory = database_url in ("sqlite://", "sqlite:///:memory:")

        if not in_memory:
            db_path = database_url.replace("sqlite:///", "")
            db_dir = os.path.dirname(db_path)
            if db_dir:
                Path(db_dir).mkdir(parents=True, exist_ok=True)

        if in_memory:
            return create_engine(
                database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
                echo=echo,
            )

        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            echo=echo,
        )
        event.listen(engine, "connect", _enable_sqlite_wal_mode)
        return engine

    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=echo,
    )


def create_database_engine(database_url: Optional[str] = None, echo: Optional[bool] = None) -> Engine:
    """
    Create the process-wide engine and session factory.
    Thread-safe with initialization lock.

    Args:
        database_url: Overrides ``settings.database_url`` on first call
        echo: Overrides ``settings.database_echo`` on first call
    """
    global _engine, _SessionLocal

    if _engine is not None:
        return _engine

    with _init_lock:
        if _engine is not None:
            return _engine

        logger.info("Creating database engine...")
        _engine = build_engine(
            database_url or settings.database_url,
            echo=settings.database_echo if echo is None else echo,
        )
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_engine)
        logger.info(f"Database engine created: {_engine.url.render_as_string(hide_password=True)}")

    return _engine


def get_session_factory() -> sessionmaker:
    create_database_engine()
    return _SessionLocal


def init_db(database_url: Optional[str] = None, echo: Optional[bool] = None) -> None:
    """Create all tables."""
    # Register models on Base.metadata
    from .models import conversation  # noqa: F401

    engine = create_database_engine(database_url, echo)
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")


def check_db_connection() -> bool:
    try:
        with create_database_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False


def check_tables_exist() -> bool:
    try:
        existing = set(inspect(create_database_engine()).get_table_names())
        missing = [t for t in REQUIRED_TABLES if t not in existing]
        if missing:
            logger.warning(f"Missing tables: {missing}")
        return not missing
    except Exception as e:
        logger.error(f"Table check failed: {e}")
        return False


def get_database_info() -> Dict[str, Any]:
    if _engine is None:
        return {"initialized": False}

    return {
        "initialized": True,
        "dialect": _engine.dialect.name,
        "url": _engine.url.render_as_string(hide_password=True),
    }


def cleanup_db() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _SessionLocal

    with _init_lock:
        if _engine is not None:
            _engine.dispose()
            logger.info("Database engine disposed")
        _engine = None
        _SessionLocal = None
