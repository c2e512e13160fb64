from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager
from functools import lru_cache

from loguru import logger
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm import sessionmaker

from config.settings import DB_DSN_ENV, DEFAULT_DB_DSN
from forsure.exceptions import StoreError


def resolve_dsn(explicit_dsn: str | None = None) -> str:
    if explicit_dsn:
        return explicit_dsn
    return os.getenv(DB_DSN_ENV, DEFAULT_DB_DSN)


@lru_cache(maxsize=8)
def get_engine(dsn: str) -> Engine:
    return create_engine(dsn, pool_pre_ping=True)


def get_session_factory(dsn_or_engine: str | Engine | None = None) -> sessionmaker[Session]:
    if isinstance(dsn_or_engine, Engine):
        engine = dsn_or_engine
    else:
        engine = get_engine(resolve_dsn(dsn_or_engine))
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_schema(engine: Engine) -> None:
    """Create all tenant and network tables."""
    # Property and network tables share the metadata; importing registers them.
    from forsure.db import network_models  # noqa: F401
    from forsure.db import property_models  # noqa: F401
    from forsure.db.models import Base

    Base.metadata.create_all(engine)
    logger.info(f"Schema ready on {engine.url.render_as_string(hide_password=True)}")


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Iterator[Session]:
    """Commit on success, roll back and raise ``StoreError`` on store failure."""
    session = factory()
    try:
        yield session
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error(f"Store operation failed: {type(exc).__name__}: {exc}")
        raise StoreError(str(exc)) from exc
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
