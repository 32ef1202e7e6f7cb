from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import DATABASE_URL, SQL_ECHO


def _enable_sqlite_fk(dbapi_connection: Any, connection_record: Any) -> None:
    # SQLite ignora le FK (e quindi ON DELETE CASCADE) se non abilitate per connessione
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_engine(url: str, echo: bool = SQL_ECHO) -> Engine:
    """
    Crea l'engine. Per SQLite:
    - foreign keys attive su ogni connessione
    - ':memory:' condiviso tra sessioni (StaticPool), utile nei test
    """
    kwargs: dict[str, Any] = {"echo": echo, "future": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url or url in ("sqlite://", "sqlite+pysqlite://"):
            kwargs["poolclass"] = StaticPool

    eng = create_engine(url, **kwargs)
    if eng.dialect.name == "sqlite":
        event.listen(eng, "connect", _enable_sqlite_fk)
    return eng


engine = make_engine(DATABASE_URL)

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    future=True,
    expire_on_commit=False
)


def configure_engine(url: str, echo: bool = SQL_ECHO) -> Engine:
    """Sostituisce l'engine globale (es. DB di test) e ricollega le sessioni."""
    global engine
    engine = make_engine(url, echo=echo)
    SessionLocal.configure(bind=engine)
    return engine


def get_engine() -> Engine:
    return engine


class Base(DeclarativeBase):
    """Base ORM per tutti i modelli."""
    pass


@contextmanager
def db_session() -> Iterator[Session]:
    """
    Context manager per gestire correttamente la sessione:
    - commit se tutto ok
    - rollback su eccezioni
    - close sempre
    """
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
