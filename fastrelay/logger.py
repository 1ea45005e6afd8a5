"""Logging configuration for FastRelay."""

import json
import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, cast

_log_context: ContextVar[dict[str, Any]] = ContextVar("fastrelay_log_context", default={})


class ContextFilter(logging.Filter):
    """A logging filter that injects context.

    The active ``contextualize`` values and the 'extra' kwarg are merged
    into ``record.context``. Values from 'extra' win on conflicts.
    """

    # These are the standard attributes of a LogRecord
    RESERVED_ATTRS = frozenset(
        (
            "args",
            "asctime",
            "created",
            "exc_info",
            "exc_text",
            "filename",
            "funcName",
            "levelname",
            "levelno",
            "lineno",
            "module",
            "msecs",
            "message",
            "msg",
            "name",
            "pathname",
            "process",
            "processName",
            "relativeCreated",
            "stack_info",
            "thread",
            "threadName",
            "taskName",
            "context",
        )
    )

    def filter(self, record: logging.LogRecord) -> bool:
        context = dict(_log_context.get())
        context.update(
            {k: v for k, v in record.__dict__.items() if k not in self.RESERVED_ATTRS}
        )
        record.context = context
        return True


class FastRelayLogger(logging.Logger):
    """A logger with a 'contextualize' method."""

    @contextmanager
    def contextualize(self, **kwargs: Any) -> Iterator[None]:
        """Adds temporary context to every log emitted inside the block.

        Nested blocks extend the outer context and restore it on exit.
        Each asyncio task sees its own copy.

        Example:
            with logger.contextualize(message_id="12345"):
                logger.info("This log will have the message_id.")
        """
        token = _log_context.set({**_log_context.get(), **kwargs})
        try:
            yield
        finally:
            _log_context.reset(token)

    def current_context(self) -> dict[str, Any]:
        return dict(_log_context.get())


class TextFormatter(logging.Formatter):
    """Formats logs as a human-readable string."""

    def format(self, record: logging.LogRecord) -> str:
        log_message = super().format(record)

        context = getattr(record, "context", None)
        if context:
            context_text = " ".join(f"{k}={v}" for k, v in context.items() if v is not None)
            if context_text:
                log_message += f" | {context_text}"

        return log_message


class JsonFormatter(logging.Formatter):
    """Formats logs as a single-line JSON document."""

    def format(self, record: logging.LogRecord) -> str:
        log_object = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "process": record.process,
            "thread": record.thread,
            **getattr(record, "context", {}),
        }

        if record.exc_info:
            log_object["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_object, indent=None, separators=(",", ":"), default=str)


def setup_logger() -> FastRelayLogger:
    """Enables and configures the FastRelay logger from the environment."""
    log_level = int(os.getenv("FASTRELAY_LOG_LEVEL", logging.INFO))
    log_serialize = bool(int(os.getenv("FASTRELAY_ENABLE_LOG_SERIALIZE", 0)))

    logging.setLoggerClass(FastRelayLogger)
    logger = logging.getLogger("fastrelay")
    logging.setLoggerClass(logging.Logger)

    if logger.hasHandlers():
        logger.handlers.clear()

    logger.setLevel(log_level)
    logger.propagate = False

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(ContextFilter())

    formatter: logging.Formatter = JsonFormatter()
    if not log_serialize:
        fmt = (
            "%(asctime)s | %(levelname)-8s "
            "| %(process)d:%(thread)d "
            "| %(module)s:%(funcName)s:%(lineno)d "
            "| %(message)s"
        )
        formatter = TextFormatter(fmt)

    handler.setFormatter(formatter)
    logger.addHandler(handler)

    return cast(FastRelayLogger, logger)


logger: FastRelayLogger = setup_logger()
