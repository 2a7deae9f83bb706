from __future__ import annotations

import uvicorn

from voice_memory.core.config import get_settings


def main() -> None:
    """Serve the memory API with uvicorn on APP_HOST:APP_PORT."""

    settings = get_settings()
    config = uvicorn.Config(
        "voice_memory.main:app",
        host=settings.app_host,
        port=settings.app_port,
        log_level=settings.log_level.lower(),
    )
    uvicorn.Server(config).run()


if __name__ == "__main__":
    main()
