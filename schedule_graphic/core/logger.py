import logging
import os
from typing import Optional

PACKAGE_LOGGER = "schedule_graphic"
_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _env_level(var: str, default: int) -> int:
    name = (os.getenv(var) or "").strip().upper()
    return getattr(logging, name, default) if name else default


def _configure():
    level = _env_level("LOG_LEVEL", logging.INFO)

    # One handler on the package logger; the CLI, the API and pytest all import it.
    pkg = logging.getLogger(PACKAGE_LOGGER)
    if not any(getattr(h, "schedule_graphic_handler", False) for h in pkg.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler.schedule_graphic_handler = True
        pkg.addHandler(handler)
    pkg.setLevel(level)

    for name in ("uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(level)

    # httpx logs one INFO line per request, i.e. per logo.
    http_level = _env_level("HTTP_LOG_LEVEL", logging.WARNING)
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(http_level)


_configure()


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Logger under the package namespace: ``get_logger("services.layout")``."""
    if not name or name == PACKAGE_LOGGER:
        return logging.getLogger(PACKAGE_LOGGER)
    if name.startswith(f"{PACKAGE_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")
