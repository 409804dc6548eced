"""Run the Episodic API with ``python -m episodic`` or the ``episodic`` script."""

from __future__ import annotations

import logging

import uvicorn

from app.config import get_settings

logger = logging.getLogger("episodic")


def main() -> None:
    settings = get_settings()
    development = settings.environment == "development"

    logging.basicConfig(level=logging.DEBUG if development else logging.INFO)
    logger.info(
        "Starting %s on %s:%s (sync %s)",
        settings.app_name,
        settings.server_host,
        settings.server_port,
        "enabled" if settings.sync_enabled else "disabled",
    )

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=development,
        log_level="debug" if development else "info",
    )


if __name__ == "__main__":  # pragma: no cover - runtime entrypoint
    main()
