"""Process-wide logging setup. Modules log through ``logging.getLogger(__name__)``."""

import logging
import sys

from pythonjsonlogger import jsonlogger

from app.core.config import settings

_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str = None, json_output: bool = None) -> None:
    level = (level or settings.log_level).upper()
    json_output = settings.log_json if json_output is None else json_output

    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(jsonlogger.JsonFormatter(_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(_FORMAT))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # SQL echo is controlled by the engine, keep the driver quiet.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
