"""
partkit logger - one package-wide logger writing to stdout.
"""
from __future__ import annotations

import logging
import sys


def setup_logger(level: int = logging.INFO) -> logging.Logger:
    logger = logging.getLogger("partkit")
    logger.setLevel(logging.DEBUG)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
    for handler in logger.handlers:
        handler.setLevel(level)
    return logger


def set_verbosity(verbose: bool = False, quiet: bool = False) -> None:
    if quiet:
        setup_logger(logging.WARNING)
    elif verbose:
        setup_logger(logging.DEBUG)
    else:
        setup_logger(logging.INFO)


logger = setup_logger()

__all__ = ["logger", "setup_logger", "set_verbosity"]
