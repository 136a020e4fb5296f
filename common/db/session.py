from contextlib import contextmanager
import os
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from ..models.base import Base


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///data/tanibudaya.db")


def _ensure_sqlite_parent(database_url: str) -> None:
    # Ensure sqlite file parent directory exists to avoid 'unable to open database file'
    if database_url.startswith("sqlite:///") and ":memory:" not in database_url:
        db_path = database_url.split("sqlite:///")[-1]
        Path(db_path).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)


def build_engine(database_url: str, **kwargs) -> Engine:
    _ensure_sqlite_parent(database_url)
    return create_engine(database_url, future=True, **kwargs)


def build_session_factory(engine: Engine):
    """Return a ``get_session``-style factory bound to ``engine``.

    Each ``with factory() as session`` block is one transaction: it commits
    when the block exits normally and rolls back on any exception.
    """
    maker = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)

    @contextmanager
    def _session_scope():
        session = maker()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return _session_scope


def init_db(engine: Engine) -> None:
    # import for side effect: register every table on Base.metadata
    from ..models import order, payment, product, seller_profile, user  # noqa: F401

    Base.metadata.create_all(engine)


engine = build_engine(DATABASE_URL)
get_session = build_session_factory(engine)
