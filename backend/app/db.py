import re
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker

Base = declarative_base()

_VERSION_RE = re.compile(r"(\d+)\.(\d+)")


def _psycopg_accepts_statement_cache_size(version: str) -> bool:
    # The option was removed in psycopg 3.2.
    match = _VERSION_RE.match(version)
    return bool(match) and (int(match.group(1)), int(match.group(2))) < (3, 2)


def _ensure_sqlite_parent(url: str) -> None:
    database = make_url(url).database
    if database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)


def _postgres_connect_args(driver: str, timeout: float) -> dict[str, object]:
    args: dict[str, object] = {
        "connect_timeout": max(1, int(timeout)),
        "keepalives": 1,
        "keepalives_idle": 120,
        "keepalives_interval": 30,
        "keepalives_count": 5,
    }
    if driver == "psycopg":
        import psycopg

        # Supabase's transaction pooler rejects server-side prepared statements.
        args["prepare_threshold"] = None
        if _psycopg_accepts_statement_cache_size(psycopg.__version__):
            args["prepared_statement_cache_size"] = 0
    return args


def create_cache_engine(url: str, *, echo: bool = False, timeout: float = 5.0) -> Engine:
    """Engine for the SQL cache store with connect timeouts bounded by ``timeout``."""

    parsed = make_url(url)
    backend = parsed.get_backend_name()
    engine_kwargs: dict[str, object] = {"echo": echo, "future": True, "pool_pre_ping": True}

    if backend == "sqlite":
        _ensure_sqlite_parent(url)
        engine_kwargs["connect_args"] = {"check_same_thread": False, "timeout": timeout}
        return create_engine(url, **engine_kwargs)

    engine_kwargs["pool_recycle"] = 300
    engine_kwargs["pool_timeout"] = timeout
    if backend.startswith("postgresql"):
        engine_kwargs["connect_args"] = _postgres_connect_args(parsed.get_driver_name(), timeout)
    return create_engine(url, **engine_kwargs)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=True, autocommit=False, future=True)


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Iterator[Session]:
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Engine) -> None:
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
