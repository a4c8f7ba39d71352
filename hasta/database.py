import logging

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base

logger = logging.getLogger(__name__)

Base = declarative_base()


# ======================================================
# DATABASE CONNECTION
# ======================================================

def build_engine(database_url: str) -> Engine:
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
        )

        # SQLite ignores ON DELETE CASCADE unless asked
        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_conn, _record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    return create_engine(
        database_url,
        pool_pre_ping=True,       # drops stale connections on managed Postgres
        pool_size=5,
        max_overflow=2,
        pool_timeout=30,
        pool_recycle=300,
    )


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )


# ======================================================
# DEPENDENCY
# ======================================================

def get_db(request: Request):
    db = request.app.state.context.session_factory()
    try:
        yield db
    finally:
        db.close()


# ======================================================
# DATABASE BOOTSTRAP
# ======================================================

def init_database(engine: Engine) -> None:
    """
    Idempotent table creation, safe on every startup.
    """
    import hasta.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("Database verified | tables=%s", ", ".join(sorted(Base.metadata.tables)))
