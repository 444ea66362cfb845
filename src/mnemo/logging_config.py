"""
Centralized logging configuration.

Modules log through ``logging.getLogger(__name__)``; entry points call
``setup_logging`` once.
"""

import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: Optional[str] = "INFO") -> None:
    """
    Configure the ``mnemo`` logger hierarchy.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ...)
    """
    numeric = getattr(logging, (level or "INFO").upper(), None)
    if not isinstance(numeric, int):
        raise ValueError(f"Invalid log level: {level}")

    root = logging.getLogger("mnemo")
    root.setLevel(numeric)
    # sys.stderr may have been replaced since our handler was created
    for handler in list(root.handlers):
        if getattr(handler, "_mnemo_handler", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._mnemo_handler = True
    root.addHandler(handler)
