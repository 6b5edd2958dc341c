"""
core/logging.py -- Process-wide logging setup.

Every module logs through a named stdlib logger ("usergate.<area>"). This is
the only place that attaches handlers. Console output is always on; when
LOG_DIR is configured two files are written as well:

  combined.log -- every record at or above the configured level
  error.log    -- ERROR and above only

Verbosity follows the environment: DEBUG outside production, INFO in
production, unless LOG_LEVEL overrides it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from core.config import Settings

LOG_FORMAT = "%(asctime)s %(levelname)-5s %(name)s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(settings: Settings) -> None:
    """Install handlers on the root logger according to settings.

    force=True replaces any handlers from an earlier call so the function is
    safe to call again after settings change (tests do this).
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if settings.log_dir:
        log_dir = Path(settings.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_dir / "combined.log", encoding="utf-8"))
        error_handler = logging.FileHandler(log_dir / "error.log", encoding="utf-8")
        error_handler.setLevel(logging.ERROR)
        handlers.append(error_handler)

    logging.basicConfig(
        level=settings.effective_log_level,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=handlers,
        force=True,
    )
    # SQLAlchemy and the ASGI server are chatty at DEBUG; keep them at WARNING.
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
