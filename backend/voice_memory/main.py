from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from voice_memory.api import memory as memory_api
from voice_memory.api import session as session_api
from voice_memory.core.config import get_settings
from voice_memory.core.logging import setup_logging
from voice_memory.db.base import create_engine, create_sessionmaker, init_db
from voice_memory.services.memory_service import create_memory_service


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    settings = get_settings()
    setup_logging(settings.log_level)

    engine = create_engine(settings.db_url)
    sessionmaker = create_sessionmaker(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await init_db(engine)
        yield
        await app.state.memory_service.shutdown()
        await engine.dispose()

    app = FastAPI(title="voice-memory", lifespan=lifespan)
    app.state.engine = engine
    app.state.sessionmaker = sessionmaker
    app.state.memory_service = create_memory_service(sessionmaker=sessionmaker, settings=settings)

    app.include_router(session_api.router)
    app.include_router(memory_api.router)

    return app


app = create_app()
