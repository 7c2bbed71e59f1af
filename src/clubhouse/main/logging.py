import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

from rich.logging import RichHandler

from clubhouse.main.config import get_loglevel
from clubhouse.main.log_context import get_log_context
from clubhouse.observability.redaction import sanitize_payload


JSON_LOGS_ENABLED = os.getenv("JSON_LOGS", "true").lower() in {"1", "true", "yes", "on"}

# Attributes every LogRecord carries; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime"}


class ContextJSONFormatter(logging.Formatter):
    """Serialize log records into one JSON object per line.

    Fields are layered: base fields, then the job context bound with
    ``log_context`` (worker, post, link), then ``extra`` values. Extras pass
    through ``sanitize_payload`` so URLs and secrets never reach the output
    unmasked.
    """

    def format(self, record: logging.LogRecord) -> str:
        log: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat(timespec="milliseconds"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in get_log_context().items():
            if value is not None:
                log.setdefault(key, value)

        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        }
        for key, value in sanitize_payload(extras).items():
            log.setdefault(key, value)

        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)

        return json.dumps(log, default=str)


# HTTP client internals log every request at INFO
for _logger_name in ("httpx", "httpcore"):
    logging.getLogger(_logger_name).setLevel(
        logging.INFO if get_loglevel() <= logging.DEBUG else logging.WARNING
    )


class SimpleLogger(logging.Logger):
    FORMAT_STRING = "%(asctime)s | %(levelname)s | %(name)s : %(message)s"

    def __init__(self, name="main", level=logging.WARNING):
        logging.Logger.__init__(self, name, level)

        if JSON_LOGS_ENABLED:
            handler: logging.Handler = logging.StreamHandler(stream=sys.stdout)
            handler.setFormatter(ContextJSONFormatter())
        else:
            # Rich output for local development
            handler = RichHandler(rich_tracebacks=True, markup=False, show_path=True)
        handler.setLevel(level)
        self.addHandler(handler)


def get_logger(module_name: str):
    # If we don't add a handler manually one will be created for us
    return SimpleLogger(name=module_name, level=get_loglevel())
