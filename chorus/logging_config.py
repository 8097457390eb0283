import logging
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(debug: bool = False) -> logging.Logger:
    """Attach a stderr handler to the package logger (idempotent)."""
    level = logging.DEBUG if debug else logging.INFO
    logger = logging.getLogger("chorus")
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    for handler in logger.handlers:
        handler.setLevel(level)

    return logger
