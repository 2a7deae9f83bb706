import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import httpx
import pytest

from voice_memory.core.config import get_settings
from voice_memory.db.base import init_db
from voice_memory.main import create_app


@pytest.fixture
def app(tmp_path, monkeypatch):
    db_path = tmp_path / "test_voice_memory.db"
    monkeypatch.setenv("DB_URL", f"sqlite+aiosqlite:///{db_path}")
    monkeypatch.setenv("MEMORY_STORAGE_DIR", str(tmp_path / "memory"))
    monkeypatch.setenv("LLM_PROVIDER", "mock")
    monkeypatch.setenv("EMBED_PROVIDER", "deterministic")
    monkeypatch.setenv("EMBED_DIM", "64")
    get_settings.cache_clear()
    app = create_app()
    yield app
    get_settings.cache_clear()


@pytest.fixture
async def client(app):
    await init_db(app.state.engine)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    await app.state.memory_service.shutdown()
    await app.state.engine.dispose()


@pytest.fixture
def anyio_backend():
    return "asyncio"
