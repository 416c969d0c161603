"""Database connection management.

Functions
---------
get_engine : Get a cached SQLAlchemy engine for a SQLite file
get_session : Session context manager that commits or rolls back
init_db : Create tables

Examples
--------
>>> with get_session("security-reports/secgate.db") as session:
...     session.query(ScanMetadata).count()
"""
from __future__ import annotations

from contextlib import contextmanager
from functools import lru_cache
from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from secgate.core.exceptions import DatabaseError
from secgate.core.models.orm import Base


def database_url(db_path: str) -> str:
    if "://" in db_path:
        return db_path
    if db_path == ":memory:":
        return "sqlite://"
    return f"sqlite:///{db_path}"


@lru_cache(maxsize=8)
def get_engine(db_path: str, echo: bool = False) -> Engine:
    url = database_url(db_path)
    if url.startswith("sqlite:///"):
        database = make_url(url).database
        if database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(
        url,
        connect_args={"check_same_thread": False} if url.startswith("sqlite") else {},
        echo=echo,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    return engine


@contextmanager
def get_session(db_path: str, echo: bool = False) -> Iterator[Session]:
    factory = sessionmaker(bind=get_engine(db_path, echo), autoflush=False, future=True)
    session: Session = factory()
    try:
        yield session
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise DatabaseError("session", str(e)) from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(db_path: str) -> None:
    Base.metadata.create_all(bind=get_engine(db_path))


__all__ = ["database_url", "get_engine", "get_session", "init_db"]
