"""Stderr logging for the serviceuser command line.

Modules log through ``logging.getLogger(__name__)``; this installs the one
handler that sends those records to stderr so stdout carries only the
kubeconfig document.
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

LOGGER_NAME = "serviceuser"
LOG_FORMAT = "%(asctime)s %(levelname)-7s %(message)s"

_HANDLER_ATTR = "_serviceuser_handler"


def configure_logging(debug: bool = False, stream: TextIO | None = None) -> logging.Logger:
    """Route ``serviceuser.*`` log records to *stream* (default ``sys.stderr``).

    Safe to call more than once; the previously installed handler is replaced.
    """
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_ATTR, False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    setattr(handler, _HANDLER_ATTR, True)

    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    return logger
