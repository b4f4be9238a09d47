"""Console logging for the node."""

from __future__ import annotations

import logging
import sys
from typing import TextIO

LOGGER_NAME = "habitat_node"
_FORMAT = "%(asctime)s %(levelname)s %(message)s"


def new_logger(stream: TextIO | None = None) -> logging.Logger:
    """Send the package's log records, with timestamps, to a console stream."""
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(logging.Formatter(_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    return logger