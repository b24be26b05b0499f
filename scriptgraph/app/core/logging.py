from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
PACKAGE_LOGGER = "scriptgraph"


def configure_logging(debug: bool = False) -> None:
    """Route log records to stderr; stdout is reserved for generated scripts."""
    level = logging.DEBUG if debug else logging.INFO
    root_logger = logging.getLogger()

    # Uvicorn or pytest may already have installed handlers; leave those in place.
    if not root_logger.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)

    root_logger.setLevel(level)
    logging.getLogger(PACKAGE_LOGGER).setLevel(level)
    logging.captureWarnings(True)
