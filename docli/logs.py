"""Debug log sink.

Nothing is written to the terminal: with ``--debug`` records go to the debug
log file, otherwise they are dropped.
"""

from __future__ import annotations

import logging
from pathlib import Path

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(debug: bool, path: Path) -> logging.Handler:
    """Install the handler for the ``docli`` logger tree and return it."""
    root = logging.getLogger("docli")
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    handler: logging.Handler
    if debug:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        root.setLevel(logging.DEBUG)
    else:
        handler = logging.NullHandler()
        root.setLevel(logging.WARNING)

    root.addHandler(handler)
    root.propagate = False
    return handler
