"""Exceptions and error codes for FastRelay."""

from enum import StrEnum


class ErrorCode(StrEnum):
    """Stable error codes attached to every failure log and exception."""

    QUEUE_CONNECTION_ERROR = "QUE-1001"
    QUEUE_SEND_ERROR = "QUE-1002"
    QUEUE_DELETE_ERROR = "QUE-1003"
    QUEUE_RECEIVE_ERROR = "QUE-1004"
    QUEUE_VISIBILITY_UPDATE_ERROR = "QUE-1005"
    QUEUE_DEAD_LETTER_MOVE_ERROR = "QUE-1006"

    MESSAGE_PROCESSING_ERROR = "MSG-2001"
    MESSAGE_VALIDATION_ERROR = "MSG-2002"
    MESSAGE_SIZE_EXCEEDED = "MSG-2003"
    MESSAGE_FORMAT_ERROR = "MSG-2004"
    INVALID_JSON_FORMAT = "MSG-2005"

    RETRY_LIMIT_EXCEEDED = "RTY-3001"

    SINK_CONNECTION_ERROR = "API-4001"
    SINK_TIMEOUT_ERROR = "API-4002"
    SINK_RESPONSE_ERROR = "API-4003"

    CONFIG_MISSING_ERROR = "CFG-5001"
    CONFIG_INVALID_ERROR = "CFG-5002"

    SYSTEM_ERROR = "SYS-9001"
    UNEXPECTED_ERROR = "SYS-9002"

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]

    def describe(self, detail: str = "") -> str:
        if detail:
            return f"[{self.value}] {self.description} - {detail}"
        return f"[{self.value}] {self.description}"


_DESCRIPTIONS: dict[ErrorCode, str] = {
    ErrorCode.QUEUE_CONNECTION_ERROR: "Failed to connect to the queue service",
    ErrorCode.QUEUE_SEND_ERROR: "Failed to send message to the queue",
    ErrorCode.QUEUE_DELETE_ERROR: "Failed to delete message from the queue",
    ErrorCode.QUEUE_RECEIVE_ERROR: "Failed to receive messages from the queue",
    ErrorCode.QUEUE_VISIBILITY_UPDATE_ERROR: "Failed to update message visibility timeout",
    ErrorCode.QUEUE_DEAD_LETTER_MOVE_ERROR: "Failed to move message to the dead-letter topic",
    ErrorCode.MESSAGE_PROCESSING_ERROR: "Failed to process message",
    ErrorCode.MESSAGE_VALIDATION_ERROR: "Message validation failed",
    ErrorCode.MESSAGE_SIZE_EXCEEDED: "Message size exceeds maximum limit",
    ErrorCode.MESSAGE_FORMAT_ERROR: "Invalid message format",
    ErrorCode.INVALID_JSON_FORMAT: "Invalid JSON format in message",
    ErrorCode.RETRY_LIMIT_EXCEEDED: "Exceeded maximum retry attempts",
    ErrorCode.SINK_CONNECTION_ERROR: "Failed to connect to the sink",
    ErrorCode.SINK_TIMEOUT_ERROR: "Sink request timed out",
    ErrorCode.SINK_RESPONSE_ERROR: "Invalid response from the sink",
    ErrorCode.CONFIG_MISSING_ERROR: "Required configuration is missing",
    ErrorCode.CONFIG_INVALID_ERROR: "Invalid configuration value",
    ErrorCode.SYSTEM_ERROR: "Internal system error",
    ErrorCode.UNEXPECTED_ERROR: "An unexpected error occurred",
}


class FastRelayException(Exception):
    """Base exception for every FastRelay error."""


class FastRelayCLIException(FastRelayException):
    """Raised on invalid command line usage or environment."""


class RelayError(FastRelayException):
    """An error that carries a stable error code."""

    code: ErrorCode = ErrorCode.UNEXPECTED_ERROR

    def __init__(self, detail: str = "", *, code: ErrorCode | None = None) -> None:
        if code is not None:
            self.code = code
        self.detail = detail
        super().__init__(self.code.describe(detail))


class QueueServiceError(RelayError):
    """The queue service (or the dead-letter topic) rejected or failed a call."""

    code = ErrorCode.QUEUE_CONNECTION_ERROR

    def __init__(
        self, detail: str = "", *, code: ErrorCode | None = None, retryable: bool = True
    ) -> None:
        super().__init__(detail, code=code)
        self.retryable = retryable


class MessageProcessingError(RelayError):
    """A message could not be delivered to the sink."""

    code = ErrorCode.MESSAGE_PROCESSING_ERROR
    permanent = False


class MessageValidationError(MessageProcessingError):
    """The message itself is unusable. Retrying will not change the outcome."""

    code = ErrorCode.MESSAGE_VALIDATION_ERROR
    permanent = True


class InvalidMessageError(MessageValidationError):
    code = ErrorCode.MESSAGE_VALIDATION_ERROR


class MessageSizeExceededError(MessageValidationError):
    code = ErrorCode.MESSAGE_SIZE_EXCEEDED


class MalformedContentError(MessageValidationError):
    code = ErrorCode.INVALID_JSON_FORMAT


class SinkConnectionError(MessageProcessingError):
    code = ErrorCode.SINK_CONNECTION_ERROR


class SinkTimeoutError(SinkConnectionError):
    code = ErrorCode.SINK_TIMEOUT_ERROR


class SinkResponseError(MessageProcessingError):
    code = ErrorCode.SINK_RESPONSE_ERROR

    def __init__(self, status_code: int, detail: str = "") -> None:
        self.status_code = status_code
        super().__init__(f"status {status_code}: {detail}" if detail else f"status {status_code}")


class ConfigurationError(RelayError):
    code = ErrorCode.CONFIG_INVALID_ERROR


def as_relay_error(exception: Exception, code: ErrorCode) -> RelayError:
    """Returns ``exception`` when it is already coded, else wraps it with ``code``."""
    if isinstance(exception, RelayError):
        return exception
    return QueueServiceError(f"{type(exception).__name__}: {exception}", code=code)
