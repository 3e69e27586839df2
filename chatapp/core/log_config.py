import logging

from .config import settings

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


def setup_logging(level: str = None) -> logging.Logger:
    """Configure the package logger.

    Attaches a single console handler to the ``chatapp`` logger; every module
    logger (``logging.getLogger(__name__)``) propagates to it. Calling this
    again only updates the level.
    """
    root = logging.getLogger("chatapp")
    root.setLevel((level or settings.log_level).upper())

    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)

    return root


logger = setup_logging()
