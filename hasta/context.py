import logging

from fastapi import Request
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from hasta.config import Settings
from hasta.database import build_engine, build_session_factory
from hasta.nonblocking import NonBlockingWriter
from hasta.store import DocumentStore

logger = logging.getLogger(__name__)


class AppContext:
    """
    Everything a handler needs to reach storage, built once per process
    and handed out through FastAPI dependencies.
    """

    def __init__(self, settings: Settings, engine: Engine = None):
        self.settings = settings
        self.engine = engine or build_engine(settings.database_url)
        self.session_factory: sessionmaker = build_session_factory(self.engine)
        self.store = DocumentStore(self.session_factory)
        self.writer = NonBlockingWriter(self.store, max_workers=settings.writer_workers)
        self.notifier = None

    def close(self) -> None:
        if self.notifier is not None:
            self.notifier.close()
        self.writer.flush(timeout=10)
        self.writer.shutdown()
        self.engine.dispose()
        logger.info("Application context closed")


# =====================================================
# DEPENDENCIES
# =====================================================

def get_context(request: Request) -> AppContext:
    return request.app.state.context


def get_settings(request: Request) -> Settings:
    return request.app.state.context.settings
