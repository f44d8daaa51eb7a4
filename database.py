from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from config import get_settings


class Base(DeclarativeBase):
    pass


def build_engine(database_url: str, **kwargs) -> Engine:
    """Engine for ``database_url``; SQLite connections enforce foreign keys."""
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, **kwargs)

    connect_args = {"check_same_thread": False, **kwargs.pop("connect_args", {})}
    eng = create_engine(database_url, connect_args=connect_args, **kwargs)
    file_backed = ":memory:" not in database_url

    @event.listens_for(eng, "connect")
    def _sqlite_pragmas(dbapi_conn, _record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        if file_backed:
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    return eng


engine = build_engine(get_settings().database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@contextmanager
def session_scope(factory: sessionmaker = SessionLocal) -> Iterator[Session]:
    session: Session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
