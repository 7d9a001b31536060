"""
LuxRig Bridge - entry point.

    uvicorn luxrig_bridge.main:app --port 3456
    python -m luxrig_bridge
"""

import uvicorn

from .config import get_settings
from .logging_config import setup_logging
from .server import create_app

settings = get_settings()
logger = setup_logging()

app = create_app(settings=settings)


def run():
    logger.info("REST API:  http://localhost:%d", settings.port)
    logger.info("WebSocket: ws://localhost:%d/stream", settings.port)
    logger.info("LM Studio: %s", settings.lmstudio_url)
    logger.info("Ollama:    %s", settings.ollama_url)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
