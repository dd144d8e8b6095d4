from datetime import datetime
import re
import sys
import json
import logging
import traceback

from pgsql_plugin.core.logging_context import ContextFilter


SUCCESS_LEVEL = 25
LOG_SEVERITY = {
    "DEBUG": "DEBUG",
    "INFO": "INFO",
    "SUCCESS": "SUCCESS",
    "WARNING": "WARNING",
    "ERROR": "ERROR",
    "CRITICAL": "CRITICAL"
}

_RESERVED_ATTRS = {
    "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "exc_info", "exc_text", "stack_info",
    "lineno", "funcName", "created", "msecs", "relativeCreated",
    "thread", "threadName", "process", "processName", "scope", "name", "taskName",
    "message", "asctime",
}

logging.addLevelName(SUCCESS_LEVEL, "SUCCESS")


class CustomLogger(logging.Logger):
    def success(self, message, *args, **kwargs):
        if self.isEnabledFor(SUCCESS_LEVEL):
            self.log(SUCCESS_LEVEL, message, *args, **kwargs, stacklevel=2)


def stringify_extra(value):
    if isinstance(value, (list, dict)):
        return str(value)
    return value


def _extra_items(record: logging.LogRecord) -> dict:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_ATTRS
    }


class CustomFormatter(logging.Formatter):

    def __init__(self, fmt="%(message)s", include_location=False):
        super().__init__(fmt)
        self.include_location = include_location

    def format(self, record):
        level_name = LOG_SEVERITY.get(record.levelname, record.levelname)
        scope = f"{record.scope}" if hasattr(record, "scope") else ""
        location = ""
        if self.include_location:
            location = f"{record.pathname}:{record.lineno}\n({record.module}:{record.funcName}:{record.lineno})"

        metadata_line = f"{datetime.now().isoformat()} [{level_name}] {scope} {location}".strip()

        message = record.getMessage()
        message_split = message.splitlines()
        if len(message_split) > 1:
            message_line = f"     Message: {message_split[0]}"
            for line in message_split[1:]:
                message_line += f"\n             {line}"
        else:
            message_line = f"     Message: {message}"

        extra_items = [
            f"{key}: {stringify_extra(value)}"
            for key, value in _extra_items(record).items()
        ]
        extra_info = ""
        if extra_items:
            extra_info = f"\n     {' '.join(extra_items)}"
        formatted_log = f"{metadata_line}\n{message_line}{extra_info}"
        if record.exc_info:
            # clickable "File path:line" locations
            lines = traceback.format_exception(*record.exc_info)
            lines = [re.sub(r'File "([^"]+)", line (\d+),', r'File "\1:\2"', line) for line in lines]
            formatted_log += "\n" + "".join(lines)
        return formatted_log


class JSONFormatter(logging.Formatter):
    def format(self, record):
        log_dict = {
            "level": record.levelname,
            "message": record.getMessage(),
            "time": self.formatTime(record, self.datefmt),
            "logger": record.name,
        }
        if hasattr(record, "scope"):
            log_dict["scope"] = record.scope
        log_dict["location"] = {
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        extras = _extra_items(record)
        if extras:
            log_dict["context"] = {k: stringify_extra(v) for k, v in extras.items()}
        if record.exc_info:
            log_dict["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_dict, ensure_ascii=False, default=str)


def setup_logger(name: str, include_location=False, use_json=False, stream=None):
    logging.setLoggerClass(CustomLogger)
    logger = logging.getLogger(name)
    if not any(isinstance(f, ContextFilter) for f in logger.filters):
        logger.addFilter(ContextFilter())

    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        stream_handler = logging.StreamHandler(stream or sys.stdout)
        stream_handler.setLevel(logging.DEBUG)
        if use_json:
            stream_handler.setFormatter(JSONFormatter())
        else:
            stream_handler.setFormatter(CustomFormatter(include_location=include_location))
        logger.addHandler(stream_handler)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return logger


def set_log_stream(stream, prefix="pgsql_plugin"):
    """Point the stream handlers of every logger under `prefix` at `stream`."""
    for name, logger in list(logging.Logger.manager.loggerDict.items()):
        if not isinstance(logger, logging.Logger):
            continue
        if name != prefix and not name.startswith(prefix + "."):
            continue
        for handler in logger.handlers:
            if isinstance(handler, logging.StreamHandler):
                # Assigned directly: setStream flushes the old stream, which may be closed
                handler.acquire()
                try:
                    handler.stream = stream
                finally:
                    handler.release()
