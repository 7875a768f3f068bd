"""Run the webhook server: `python -m processbot.gateway`."""

from __future__ import annotations

import uvicorn

from processbot.config.settings import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "processbot.gateway.app:app",
        host=settings.gateway.host,
        port=settings.gateway.port,
        log_config=None,  # structlog owns output
    )


if __name__ == "__main__":
    main()
