import logging

from app.core.config import settings
from app.core.request_context import request_id_ctx_var

LOG_FORMAT = "%(asctime)s %(levelname)s request_id=%(request_id)s %(name)s %(message)s"


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_ctx_var.get() or "-"
        return True


def setup_logging(level: str | None = None) -> None:
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return

    handler = logging.StreamHandler()
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S"))
    root_logger.setLevel((level or settings.log_level).upper())
    root_logger.addHandler(handler)
    # websocket frame logging is noisy at INFO
    logging.getLogger("websockets").setLevel(logging.WARNING)
