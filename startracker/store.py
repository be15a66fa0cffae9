"""
Persistent store handle.

A Store owns one SQLAlchemy engine and hands out sessions. Every service
receives the Store explicitly; there is no module-level connection.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .tables import Base, SettingRow

logger = logging.getLogger(__name__)


def _is_memory_url(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in url


class Store:
    def __init__(self, url: str = "sqlite://", echo: bool = False):
        self.url = url
        self.engine = self._create_engine(url, echo)
        self._sessionmaker = sessionmaker(bind=self.engine, expire_on_commit=False)

    def _create_engine(self, url: str, echo: bool) -> Engine:
        if not url.startswith("sqlite"):
            return create_engine(url, echo=echo)

        kwargs = {"echo": echo, "connect_args": {"check_same_thread": False}}
        if _is_memory_url(url):
            # A private in-memory database only exists on one connection.
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, **kwargs)
        use_wal = not _is_memory_url(url)

        @event.listens_for(engine, "connect")
        def _sqlite_pragmas(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            if use_wal:
                cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    def create_schema(self) -> None:
        Base.metadata.create_all(self.engine)
        logger.debug("Schema ready on %s", self.url)

    @contextmanager
    def session(self, existing: Optional[Session] = None) -> Iterator[Session]:
        """
        Yield a session that commits on success and rolls back on error.

        When ``existing`` is given it is yielded as-is and left for its
        owner to commit, so helpers can join a caller's transaction.
        """
        if existing is not None:
            yield existing
            return

        session = self._sessionmaker()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def get_setting(self, key: str, session: Optional[Session] = None) -> str:
        with self.session(session) as s:
            row = s.get(SettingRow, key)
            return row.value if row else ""

    def set_setting(self, key: str, value: str, session: Optional[Session] = None) -> None:
        with self.session(session) as s:
            row = s.get(SettingRow, key)
            if row is None:
                s.add(SettingRow(key=key, value=value))
            else:
                row.value = value

    def all_settings(self, session: Optional[Session] = None) -> dict[str, str]:
        with self.session(session) as s:
            rows = s.scalars(select(SettingRow).order_by(SettingRow.key)).all()
            return {row.key: row.value for row in rows}

    def dispose(self) -> None:
        self.engine.dispose()
