"""Run the proxy with uvicorn."""

import uvicorn

from .core import load_settings
from .logging import setup_logging
from .main import create_app


def main() -> None:
    logger = setup_logging()
    settings = load_settings()
    app = create_app(settings)
    logger.info(f"Starting NIM proxy on {settings.host}:{settings.port}")
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
