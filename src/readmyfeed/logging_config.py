"""Configure logging for the application."""

import logging
import sys


def setup_logging(debug: bool = False) -> None:
    level = logging.DEBUG if debug else logging.INFO
    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    logger = logging.getLogger("readmyfeed")
    logger.setLevel(level)
    if not logger.handlers:
        logger.addHandler(handler)

    # Transport and signing libraries are chatty; only show them in debug mode
    noisy_level = logging.DEBUG if debug else logging.WARNING
    for name in ("httpx", "httpcore", "x_client_transaction"):
        logging.getLogger(name).setLevel(noisy_level)
