# turnos/db.py

import logging

from sqlalchemy import event
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine, Session

from turnos.config import DATABASE_URL, SQL_ECHO

logger = logging.getLogger(__name__)


def enable_sqlite_write_locking(engine):
    """Start every SQLite transaction with BEGIN IMMEDIATE.

    pysqlite defers BEGIN until the first write, so two sessions can both read
    "slot free" and then both insert. Taking the write lock at BEGIN makes the
    whole check-then-write a single serialized unit.
    """

    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str, echo: bool = False):
    if url.startswith("sqlite"):
        if url in ("sqlite://", "sqlite:///:memory:"):
            # in-memory: one shared connection for every session
            return create_engine(
                url,
                echo=echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},  # required for SQLite + FastAPI
        )
        enable_sqlite_write_locking(engine)
        return engine
    return create_engine(url, echo=echo, pool_pre_ping=True)


# Engine = connection to the database
engine = build_engine(DATABASE_URL, echo=SQL_ECHO)


def create_db_and_tables(bind=None):
    # models must be imported so their tables are registered on the metadata
    from turnos import models  # noqa: F401

    SQLModel.metadata.create_all(bind or engine)
    logger.info("Database tables ready")


# Dependency: one session per request
def get_session():
    with Session(engine) as session:
        yield session
