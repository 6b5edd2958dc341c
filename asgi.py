"""
asgi.py -- ASGI entry point for usergate.

Run with:  uvicorn asgi:app --reload
           usergate          (console script installed by pyproject.toml)
"""

import uvicorn

from api.main import app
from core.config import get_settings

__all__ = ["app", "main"]


def main() -> None:
    """Serve the app with uvicorn on the configured host and port."""
    settings = get_settings()
    uvicorn.run(
        "asgi:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_config=None,  # keep the handlers installed by core.logging
    )


if __name__ == "__main__":
    main()
