from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from config import get_settings


def create_db_engine(url: str, **kwargs) -> Engine:
    """Engine for `url`; SQLite connections are shareable across threads and enforce foreign keys."""
    if not url.startswith("sqlite"):
        return create_engine(url, **kwargs)

    eng = create_engine(url, connect_args={"check_same_thread": False}, **kwargs)
    event.listen(eng, "connect", _enforce_foreign_keys)
    return eng


def _enforce_foreign_keys(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


engine = create_db_engine(get_settings().database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
