import logging
import sys

from app.core.config import settings
from app.core.request_context import get_request_id


class RequestIdFilter(logging.Filter):
    """Stamp every record with the id of the request being served"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or "-"
        return True


def setup_logging() -> logging.Logger:
    """
    Configure logging for the application.
    """
    logger = logging.getLogger("app")
    logger.setLevel(settings.LOG_LEVEL)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(settings.LOG_LEVEL)
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"
    ))

    if not logger.handlers:
        logger.addHandler(handler)

    return logger
