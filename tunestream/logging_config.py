import logging
import sys

from tunestream.config import Config
from tunestream.request_id import request_id_context

LOG_FORMAT = "%(asctime)s - [%(request_id)s] - %(name)s - %(levelname)s - %(message)s"


class RequestIdFilter(logging.Filter):
    """Makes sure every record carries a request_id so the format never fails."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = request_id_context.get()
        return True


def setup_logging(config: Config, service_name: str = "tunestream") -> logging.Logger:
    log_level = getattr(logging, config.log_level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestIdFilter())

    logging.basicConfig(level=log_level, format=LOG_FORMAT, handlers=[handler], force=True)
    # uvicorn's loggers propagate to the root handler
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).handlers.clear()
        logging.getLogger(name).propagate = True

    return logging.getLogger(service_name)
