"""
Console and queue logging for the tenant schema core.

- ContextAwareLogger renders extras into the message (pipe-delimited) while
  keeping them on the record for structured handlers.
- AzureQueueHandler ships structured log entries to an Azure Storage queue.
  The azure-storage-queue client is imported when the handler talks to Azure,
  so hosts that never enable queue logging do not need the "azure" extra.
"""

import json
import logging
import sys
import traceback
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic_core import to_jsonable_python

from ..config import get_config

LOGGER_NAME = "tenant_schema_core"

# Record fields lifted to the top level of a queued entry
PROMOTED_FIELDS = ("tenant_id", "schema_name")

_component_logger: Optional["ContextAwareLogger"] = None

# Attributes every LogRecord already carries; extras may not overwrite them
_RECORD_ATTRIBUTES = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime"}


def _render(msg: str, extra: Dict[str, Any]) -> str:
    if not extra:
        return msg
    return " | ".join([msg] + [f"{key}={value}" for key, value in extra.items()])


class ContextAwareLogger:
    """
    Wraps a stdlib logger so that ``extra`` is visible in plain text output.

    The rendered message carries ``key=value`` pairs; the record still gets the
    extras as attributes, with names that clash with LogRecord fields prefixed
    by ``ctx_``.
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def _log(self, method: str, msg: str, **kwargs) -> None:
        extra = kwargs.pop("extra", None) or {}
        record_extra = {
            (f"ctx_{key}" if key in _RECORD_ATTRIBUTES else key): value
            for key, value in extra.items()
        }
        getattr(self.logger, method)(_render(msg, extra), extra=record_extra, **kwargs)

    def set_level(self, level) -> None:
        self.logger.setLevel(level)

    def debug(self, msg, **kwargs):
        self._log("debug", msg, **kwargs)

    def info(self, msg, **kwargs):
        self._log("info", msg, **kwargs)

    def warning(self, msg, **kwargs):
        self._log("warning", msg, **kwargs)

    def error(self, msg, **kwargs):
        self._log("error", msg, **kwargs)

    def exception(self, msg, **kwargs):
        self._log("exception", msg, **kwargs)


class AzureQueueHandler(logging.Handler):
    """
    Buffers log records as JSON entries and sends them to an Azure Storage queue.

    A batch goes out when ``batch_size`` entries are buffered, on flush() and on
    close(). Without a connection string entries are only buffered. Transport
    problems are written to stderr; the handler never raises into the caller.
    """

    def __init__(
        self,
        queue_name: str = "logs-queue",
        connection_string: Optional[str] = None,
        batch_size: int = 10,
    ):
        super().__init__()
        self.queue_name = queue_name
        self.connection_string = connection_string or get_config().queue.connection_string
        self.batch_size = batch_size
        self.log_buffer: List[Dict[str, Any]] = []

        if self.connection_string:
            self._ensure_queue_exists()
        else:
            sys.stderr.write("Azure Storage connection string not provided\n")

    def _ensure_queue_exists(self) -> bool:
        from azure.storage.queue import QueueServiceClient

        try:
            service = QueueServiceClient.from_connection_string(self.connection_string)
            if self.queue_name not in {queue.name for queue in service.list_queues()}:
                sys.stderr.write(f"Creating log queue '{self.queue_name}'\n")
                service.create_queue(self.queue_name)
        except Exception as e:
            sys.stderr.write(f"Could not verify log queue '{self.queue_name}': {e}\n")
            return False
        return True

    def build_entry(self, record: logging.LogRecord) -> Dict[str, Any]:
        """JSON-ready dict for one record: tenant fields promoted, other extras under ``context``."""
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        entry.update(
            {name: getattr(record, name) for name in PROMOTED_FIELDS if hasattr(record, name)}
        )

        context = {}
        for key, value in vars(record).items():
            if key in _RECORD_ATTRIBUTES or key in PROMOTED_FIELDS:
                continue
            if key.startswith("_") or callable(value):
                continue
            context[key] = value
        if context:
            entry["context"] = context

        if record.exc_info and record.exc_info[0]:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": [line.rstrip() for line in traceback.format_exception(*record.exc_info)],
            }
        return entry

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.log_buffer.append(self.build_entry(record))
        except Exception:
            self.handleError(record)
            return
        if len(self.log_buffer) >= self.batch_size:
            self.flush()

    def flush(self) -> None:
        if not self.connection_string or not self.log_buffer:
            return

        from azure.storage.queue import QueueClient

        try:
            client = QueueClient.from_connection_string(
                conn_str=self.connection_string, queue_name=self.queue_name
            )
        except Exception as e:
            sys.stderr.write(f"Could not connect to log queue '{self.queue_name}': {e}\n")
            return

        batch, self.log_buffer = self.log_buffer, []
        for entry in batch:
            try:
                client.send_message(json.dumps(to_jsonable_python(entry, fallback=str)))
            except Exception as e:
                sys.stderr.write(f"Dropped log entry for queue '{self.queue_name}': {e}\n")

    def close(self) -> None:
        self.flush()
        super().close()


def _resolve_level(log_level: Union[int, str]) -> int:
    if isinstance(log_level, str):
        return getattr(logging, log_level.upper(), logging.INFO)
    return log_level


def _clear_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def configure_logging(
    component_name: str,
    log_level: Optional[Union[int, str]] = None,
    enable_queue: Optional[bool] = None,
    queue_name: Optional[str] = None,
    queue_batch_size: Optional[int] = None,
    connection_string: Optional[str] = None,
) -> ContextAwareLogger:
    """
    Install console (and optionally queue) handlers on the package logger.

    Unset arguments come from get_config(). Calling it again replaces the
    handlers installed by the previous call.

    Args:
        component_name: Host process name, recorded in the startup line
        log_level: Level name or number
        enable_queue: Also ship entries with AzureQueueHandler
        queue_name: Target queue for shipped entries
        queue_batch_size: Entries per queue batch
        connection_string: Azure Storage connection string
    """
    global _component_logger

    settings = get_config()
    level = _resolve_level(settings.logging.level if log_level is None else log_level)
    if enable_queue is None:
        enable_queue = settings.logging.enable_logs_queue
    if connection_string is None:
        connection_string = settings.queue.connection_string
    queue_name = queue_name or settings.queue.logs_queue_name
    queue_batch_size = queue_batch_size or settings.queue.batch_size

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    _clear_handlers(logger)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(console)

    if enable_queue:
        shipper = AzureQueueHandler(
            queue_name=queue_name, connection_string=connection_string, batch_size=queue_batch_size
        )
        shipper.setLevel(level)
        logger.addHandler(shipper)

    _component_logger = ContextAwareLogger(logger)
    _component_logger.info(
        "Logging configured",
        extra={
            "component_name": component_name,
            "queue_logging": enable_queue,
            "queue_name": queue_name if enable_queue else None,
        },
    )
    return _component_logger


def get_logger(log_level: Optional[Union[int, str]] = None) -> ContextAwareLogger:
    """The logger from configure_logging(), or a plain wrapper if it was never called."""
    if _component_logger is not None:
        if log_level is not None:
            _component_logger.set_level(_resolve_level(log_level))
        return _component_logger

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(_resolve_level(get_config().logging.level if log_level is None else log_level))
    return ContextAwareLogger(logger)


def reset_logging() -> None:
    global _component_logger
    _clear_handlers(logging.getLogger(LOGGER_NAME))
    _component_logger = None
