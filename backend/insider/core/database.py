"""
Database configuration and session management
"""
import logging
import re
import time
from typing import Generator, Optional

from sqlalchemy import case, create_engine, event, func
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from insider.core.config import get_settings
from insider.core.logging_config import LoggingConfig
from insider.core.metrics import (db_connection_pool_size, db_queries_total,
                                  db_query_duration_seconds)

# Lazy initialization - don't create engine at module level
_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None

Base = declarative_base()

_TABLE_PATTERNS = {
    'select': re.compile(r'\bFROM\s+"?(\w+)', re.IGNORECASE),
    'insert': re.compile(r'\bINTO\s+"?(\w+)', re.IGNORECASE),
    'update': re.compile(r'^\s*UPDATE\s+"?(\w+)', re.IGNORECASE),
    'delete': re.compile(r'\bFROM\s+"?(\w+)', re.IGNORECASE),
}


def _statement_table(operation: str, statement: str) -> str:
    pattern = _TABLE_PATTERNS.get(operation)
    if not pattern:
        return "unknown"
    match = pattern.search(statement)
    return match.group(1).lower() if match else "unknown"


def _setup_db_metrics(engine: Engine):
    """Setup SQLAlchemy event listeners for database metrics"""

    @event.listens_for(engine, "before_cursor_execute")
    def receive_before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault('query_start_time', []).append(time.time())

    @event.listens_for(engine, "after_cursor_execute")
    def receive_after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        if not conn.info.get('query_start_time'):
            return
        duration = time.time() - conn.info['query_start_time'].pop()
        stripped = statement.strip()
        operation = stripped.split()[0].lower() if stripped else "unknown"
        table = _statement_table(operation, stripped)
        db_queries_total.labels(operation=operation, table=table).inc()
        db_query_duration_seconds.labels(operation=operation, table=table).observe(duration)

    def _update_pool_metrics(*_args):
        pool = engine.pool
        if hasattr(pool, "checkedout") and hasattr(pool, "size"):
            db_connection_pool_size.labels(state="active").set(pool.checkedout())
            db_connection_pool_size.labels(state="idle").set(max(pool.size() - pool.checkedout(), 0))

    event.listen(engine, "checkout", _update_pool_metrics)
    event.listen(engine, "checkin", _update_pool_metrics)


def _enable_sqlite_foreign_keys(engine: Engine):
    @event.listens_for(engine, "connect")
    def receive_connect(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def get_engine() -> Engine:
    """Get or create database engine (lazy initialization)"""
    global _engine
    if _engine is None:
        settings = get_settings()
        LoggingConfig.configure()

        url = settings.database_url
        if url.startswith("sqlite"):
            _engine = create_engine(
                url,
                echo=settings.log_sqlalchemy,
                connect_args={"check_same_thread": False, "timeout": 5},
            )
            _enable_sqlite_foreign_keys(_engine)
        else:
            _engine = create_engine(
                url,
                pool_size=settings.database_pool_size,
                max_overflow=settings.database_max_overflow,
                pool_pre_ping=True,
                echo=settings.log_sqlalchemy,
                connect_args={
                    "connect_timeout": 5,
                    "options": "-c statement_timeout=5000"
                },
            )

        sqlalchemy_logger = logging.getLogger("sqlalchemy.engine")
        if not settings.log_sqlalchemy:
            sqlalchemy_logger.setLevel(logging.WARNING)
            sqlalchemy_logger.propagate = False

        _setup_db_metrics(_engine)

    return _engine


def get_session_local() -> sessionmaker:
    """Get or create session factory (lazy initialization)"""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
    return _SessionLocal


def reset_engine():
    """Dispose the engine so the next access picks up fresh settings"""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for getting database session
    """
    SessionLocal = get_session_local()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def increment_counter(db: Session, column, *criteria, delta: int = 1) -> int:
    """
    Add ``delta`` to a counter column inside the database, clamped at zero.

    The new value is computed by the UPDATE itself, so concurrent
    transactions never overwrite each other's increments. Returns the
    number of rows matched.
    """
    current = func.coalesce(column, 0)
    new_value = case((current + delta < 0, 0), else_=current + delta)
    return db.query(column.class_).filter(*criteria).update(
        {column: new_value},
        synchronize_session=False
    )
