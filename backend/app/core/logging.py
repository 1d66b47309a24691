from __future__ import annotations

import logging

from backend.app.core.config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str | None = None) -> None:
    """
    Configure le logger racine une seule fois (handler console).
    Les modules loggent via logging.getLogger(__name__).
    """
    root = logging.getLogger()
    level_name = (level or LOG_LEVEL).upper()
    root.setLevel(getattr(logging, level_name, logging.INFO))

    for handler in root.handlers[:]:
        if getattr(handler, "_inventory_handler", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._inventory_handler = True
    root.addHandler(handler)
