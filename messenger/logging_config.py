import logging
import sys

from messenger.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = None) -> None:
    """Configure the root logger once for the whole process."""
    root = logging.getLogger()
    if getattr(root, "_messenger_configured", False):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel((level or settings.LOG_LEVEL).upper())

    # SQL echo is controlled by DEBUG, keep the engine logger quiet otherwise
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if settings.DEBUG else logging.WARNING)
    root._messenger_configured = True
