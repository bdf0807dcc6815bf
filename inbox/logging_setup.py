import json
import logging

_HANDLER_NAME = "inbox"


class JsonFormatter(logging.Formatter):
    """Minimal JSON log formatter used when INBOX_LOG_JSON=true."""

    def format(self, record: logging.LogRecord) -> str:
        log_record = {
            "level": record.levelname,
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log_record, ensure_ascii=False)


def _get_formatter(log_json: bool) -> logging.Formatter:
    if log_json:
        return JsonFormatter()
    return logging.Formatter("[%(asctime)s] %(levelname)s in %(name)s: %(message)s")


def init_logging(level: str = "INFO", log_json: bool = False) -> None:
    """Configure the root logger; calling it again replaces the previous setup."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        if handler.get_name() == _HANDLER_NAME:
            root.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(_get_formatter(log_json))
    root.addHandler(handler)
    root.setLevel(level.upper())

    # provider HTTP calls are logged by the adapters themselves
    logging.getLogger("httpx").setLevel(logging.WARNING)
