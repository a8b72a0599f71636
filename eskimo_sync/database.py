"""
Database engine and session handling for the local store.

A single ``DatabaseManager`` is kept at module level. The Flask app and the
Celery workers initialise it once and open transactional scopes with
``db_session_scope()``.
"""

import logging
import os
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, scoped_session, Session
from sqlalchemy.pool import StaticPool

from eskimo_sync.models import Base
from eskimo_sync.config import Config

logger = logging.getLogger(__name__)


def _masked(url: str) -> str:
    if '@' not in url:
        return url
    scheme, rest = url.split('://', 1)
    return f"{scheme}://***@{rest.split('@', 1)[1]}"


def _on_sqlite_connect(dbapi_connection, connection_record):
    # BEGIN comes from _on_sqlite_begin; pysqlite must not open transactions itself
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _on_sqlite_begin(connection):
    connection.exec_driver_sql("BEGIN")


def build_engine(database_url: str) -> Engine:
    """SQLite gets one shared connection with foreign keys on; anything else is pooled."""
    if not database_url.startswith('sqlite'):
        return create_engine(
            database_url,
            echo=Config.DATABASE_ECHO,
            pool_size=Config.DATABASE_POOL_SIZE,
            max_overflow=Config.DATABASE_MAX_OVERFLOW,
            pool_pre_ping=True,
            pool_recycle=3600,
        )

    engine = create_engine(
        database_url,
        poolclass=StaticPool,
        connect_args={'check_same_thread': False, 'timeout': 30},
    )
    event.listen(engine, "connect", _on_sqlite_connect)
    event.listen(engine, "begin", _on_sqlite_begin)
    return engine


class DatabaseManager:
    """Owns the engine and the thread-local session registry."""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or Config.DATABASE_URL or \
            "sqlite:///" + os.path.join(os.getcwd(), 'eskimo_sync.db')
        self.engine: Optional[Engine] = None
        self._sessions: Optional[scoped_session] = None

    def initialize(self, create_tables: bool = False) -> None:
        try:
            self.engine = build_engine(self.database_url)
        except Exception as e:
            logger.error(f"Cannot open database {_masked(self.database_url)}: {e}")
            raise

        self._sessions = scoped_session(
            sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        )
        if create_tables:
            Base.metadata.create_all(self.engine)
        logger.info(f"Database ready: {_masked(self.database_url)}")

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """Commit on success, roll back and re-raise on error."""
        if self._sessions is None:
            raise RuntimeError("Database not initialized. Call initialize() first.")

        session = self._sessions()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Database session rolled back: {e}")
            raise
        finally:
            self._sessions.remove()

    def health_check(self) -> dict:
        try:
            with self.session_scope() as session:
                ok = session.execute(text("SELECT 1")).scalar() == 1
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return {'status': 'unhealthy', 'error': str(e)}
        return {'status': 'healthy', 'connection_test': ok}


db_manager = DatabaseManager()


def init_database(database_url: Optional[str] = None, create_tables: bool = False) -> DatabaseManager:
    """(Re)initialise the module-level manager, replacing it when a URL is given."""
    global db_manager
    if database_url:
        db_manager = DatabaseManager(database_url)
    db_manager.initialize(create_tables)
    return db_manager


@contextmanager
def db_session_scope() -> Generator[Session, None, None]:
    with db_manager.session_scope() as session:
        yield session
