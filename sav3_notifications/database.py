from sqlmodel import SQLModel, create_engine, Session
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
import logging

from .core.config import settings

logger = logging.getLogger(__name__)


def build_engine(db_url: str, echo: bool = False) -> Engine:
    engine_kwargs = {}

    if db_url.startswith("sqlite"):
        # SQLite specific connect args
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        if db_url in ("sqlite://", "sqlite:///:memory:"):
            # one shared connection, otherwise every session sees an empty database
            engine_kwargs["poolclass"] = StaticPool
    else:
        # Better resiliency behind PgBouncer / managed Postgres
        engine_kwargs.update({
            "pool_pre_ping": True,
            "pool_recycle": 300,
            "pool_size": 5,
            "max_overflow": 10,
        })

    new_engine = create_engine(db_url, echo=echo, **engine_kwargs)

    if db_url.startswith("sqlite"):
        @event.listens_for(new_engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
            # cascades and FK violations are off by default in SQLite
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return new_engine


engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)


def create_db_and_tables(target: Engine = None):
    # models must be imported so their tables are registered on the metadata
    from .db import models  # noqa: F401
    SQLModel.metadata.create_all(target or engine)
    logger.info("Database tables ensured")


def get_session():
    with Session(engine) as session:
        yield session
