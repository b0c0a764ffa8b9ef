import logging
import sys

from storefront.config import settings

_FORMAT = "[STOREFRONT] %(levelname)s %(name)s: %(message)s"


def get_logger(name: str) -> logging.Logger:
    """Module logger writing to stdout; the handler is attached once per logger."""
    log = logging.getLogger(name)
    log.setLevel(settings.LOG_LEVEL.upper())
    if not log.handlers:
        h = logging.StreamHandler(sys.stdout)
        h.setFormatter(logging.Formatter(_FORMAT))
        log.addHandler(h)
    return log
