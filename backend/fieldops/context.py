from __future__ import annotations
"""Per-application state: engine, session factory and change feed.

One FieldContext is created by create_app() and stored in
app.extensions['fieldops']; nothing here is module-global, so several apps
(e.g. one per test) can live in the same process.
"""
from sqlalchemy import create_engine, event
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from fieldops.services.events import ChangeFeed, install_change_tracking


def _build_engine(database_url: str):
    if database_url.endswith(':memory:'):
        # Single shared in-memory SQLite database across all sessions
        engine = create_engine(
            database_url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(database_url, echo=False, future=True)
    if engine.dialect.name == 'sqlite':
        _enable_sqlite_savepoints(engine)
    return engine


def _enable_sqlite_savepoints(engine):
    # pysqlite's implicit BEGIN breaks SAVEPOINT; emit BEGIN ourselves
    @event.listens_for(engine, 'connect')
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, 'begin')
    def _on_begin(conn):
        conn.exec_driver_sql('BEGIN')


class FieldContext:
    def __init__(self, database_url: str, change_feed_size: int = 1000):
        self.database_url = database_url
        self.engine = _build_engine(database_url)
        factory = sessionmaker(bind=self.engine, expire_on_commit=False, autoflush=False)
        self.changes = install_change_tracking(factory, ChangeFeed(maxlen=change_feed_size))
        self.sessions = scoped_session(factory)

    def session(self):
        return self.sessions()

    def remove_session(self, exc=None):
        self.sessions.remove()

    def dispose(self):
        self.sessions.remove()
        self.engine.dispose()

__all__ = ['FieldContext']
