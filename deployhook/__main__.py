"""Run the webhook receiver with uvicorn: ``python -m deployhook``."""

import uvicorn

from deployhook.config import settings


def main() -> None:
    """Serve the application on the configured host and port."""
    uvicorn.run(
        "deployhook.main:app",
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
