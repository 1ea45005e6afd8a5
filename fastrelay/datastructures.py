from dataclasses import dataclass, field
from enum import StrEnum

from fastrelay.exceptions import RelayError

ORIGINAL_MESSAGE_ID_ATTRIBUTE = "OriginalMessageId"
FAILURE_REASON_ATTRIBUTE = "FailureReason"


@dataclass(frozen=True)
class QueuedMessage:
    id: str
    body: bytes | None
    receipt: str
    attributes: dict[str, str] = field(default_factory=dict)
    delivery_attempt: int = 0

    @property
    def size(self) -> int:
        return len(self.body) if self.body is not None else 0


@dataclass(frozen=True)
class DeadLetterEnvelope:
    body: bytes
    original_message_id: str
    failure_reason: str

    @property
    def attributes(self) -> dict[str, str]:
        return {
            ORIGINAL_MESSAGE_ID_ATTRIBUTE: self.original_message_id,
            FAILURE_REASON_ATTRIBUTE: self.failure_reason,
        }


@dataclass(frozen=True)
class SinkResponse:
    status_code: int
    body: str = ""

    @property
    def successful(self) -> bool:
        return 200 <= self.status_code < 300


@dataclass(frozen=True)
class OperationResult:
    ok: bool
    error: RelayError | None = None


@dataclass(frozen=True)
class DeadLetterResult(OperationResult):
    sent: bool = False
    acknowledged: bool = False


class MessageOutcome(StrEnum):
    PROCESSED = "processed"
    RETRY_SCHEDULED = "retry_scheduled"
    DEAD_LETTERED = "dead_lettered"
    DEAD_LETTER_FAILED = "dead_letter_failed"


@dataclass
class PollCycleReport:
    skipped: bool = False
    received: int = 0
    outcomes: dict[str, MessageOutcome] = field(default_factory=dict)
    error: Exception | None = None


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    visibility_backoff_secs: int = 30
    dead_letter_permanent_failures: bool = False


@dataclass(frozen=True)
class PollPolicy:
    max_messages: int = 10
    wait_seconds: float = 20.0
    interval_secs: float = 1.0
    concurrent_dispatch: bool = True


@dataclass(frozen=True)
class RateLimitPolicy:
    limit: int = 10
    interval_secs: float = 1.0


@dataclass(frozen=True)
class SinkPolicy:
    max_message_size: int = 10_000
    timeout_secs: float = 30.0
