import logging
import os
from enum import StrEnum

from fastrelay.exceptions import FastRelayCLIException


class LogLevels(StrEnum):
    """A class to represent log levels."""

    CRITICAL = "critical"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    DEBUG = "debug"


LOGGING_LEVEL_MAP: dict[str, int] = {
    LogLevels.CRITICAL: logging.CRITICAL,
    LogLevels.ERROR: logging.ERROR,
    LogLevels.WARNING: logging.WARNING,
    LogLevels.INFO: logging.INFO,
    LogLevels.DEBUG: logging.DEBUG,
}


def get_log_level(level: LogLevels | str | int) -> int:
    """Get the log level.

    Args:
        level: The log level to get. Can be an integer, a LogLevels enum value, or a string.

    Returns:
        The log level as an integer.
    """
    if isinstance(level, int):
        return level

    if isinstance(level, str) and level.lower() in LOGGING_LEVEL_MAP:
        return LOGGING_LEVEL_MAP[level.lower()]

    possible_values = [member.value for member in LogLevels]
    raise FastRelayCLIException(
        f"Invalid value for '--log-level', it should be one of {possible_values}"
    )


class APMProviders(StrEnum):
    """A class to represent the possible APM providers."""

    NOOP = "noop"
    NEWRELIC = "newrelic"


def ensure_pubsub_credentials() -> None:
    credentials = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
    emulator_host = os.getenv("PUBSUB_EMULATOR_HOST")
    if not credentials and not emulator_host:
        raise FastRelayCLIException(
            "You should set either of the environment variables for authentication:"
            " (GOOGLE_APPLICATION_CREDENTIALS, PUBSUB_EMULATOR_HOST)"
        )
