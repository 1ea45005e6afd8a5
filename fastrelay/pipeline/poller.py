from collections.abc import Iterator
from contextlib import contextmanager

from anyio import create_task_group

from fastrelay.datastructures import (
    MessageOutcome,
    PollCycleReport,
    PollPolicy,
    QueuedMessage,
    RetryPolicy,
)
from fastrelay.exceptions import (
    ConfigurationError,
    ErrorCode,
    MessageProcessingError,
    as_relay_error,
)
from fastrelay.logger import logger
from fastrelay.observability import get_apm_provider
from fastrelay.pipeline.deadletter import DeadLetterRouter
from fastrelay.pipeline.invoker import SinkInvoker
from fastrelay.pipeline.visibility import VisibilityExtender
from fastrelay.ratelimit import RateBudget
from fastrelay.retry import RetryTracker
from fastrelay.types import QueueService


class QueuePoller:
    """Pulls a batch from the queue and drives each message to an outcome.

    A message either reaches the sink (it is deleted and its retry count
    cleared), is scheduled for redelivery (its count grows and its
    visibility is extended), or is moved to the dead-letter topic once its
    retries are spent. Messages of a batch never affect each other.
    """

    def __init__(
        self,
        queue: QueueService,
        invoker: SinkInvoker,
        retry_tracker: RetryTracker,
        visibility: VisibilityExtender,
        dead_letter_router: DeadLetterRouter,
        rate_budget: RateBudget,
        poll_policy: PollPolicy | None = None,
        retry_policy: RetryPolicy | None = None,
        name: str = "relay",
    ) -> None:
        self.queue = queue
        self.invoker = invoker
        self.retry_tracker = retry_tracker
        self.visibility = visibility
        self.dead_letter_router = dead_letter_router
        self.rate_budget = rate_budget
        self.poll_policy = poll_policy or PollPolicy()
        self.retry_policy = retry_policy or RetryPolicy(max_retries=retry_tracker.max_retries)
        if self.retry_policy.max_retries != retry_tracker.max_retries:
            raise ConfigurationError(
                f"Retry policy allows {self.retry_policy.max_retries} retries but the "
                f"tracker allows {retry_tracker.max_retries}"
            )
        self.name = name
        self.apm = get_apm_provider()

    async def poll(self) -> PollCycleReport:
        if not self.rate_budget.try_acquire():
            logger.warning("Rate limit exceeded, skipping poll")
            return PollCycleReport(skipped=True)

        report = PollCycleReport()
        try:
            messages = await self.queue.receive(
                self.poll_policy.max_messages, self.poll_policy.wait_seconds
            )
        except Exception as e:
            error = as_relay_error(e, ErrorCode.QUEUE_RECEIVE_ERROR)
            logger.error(
                f"Error polling messages, the next cycle will try again: {error}",
                extra={"error_code": error.code},
            )
            report.error = error
            return report

        report.received = len(messages)
        logger.debug(f"Received {len(messages)} messages")

        if self.poll_policy.concurrent_dispatch and len(messages) > 1:
            async with create_task_group() as tg:
                for message in messages:
                    tg.start_soon(self._dispatch_into, message, report)
        else:
            for message in messages:
                await self._dispatch_into(message, report)

        return report

    async def dispatch(self, message: QueuedMessage) -> MessageOutcome:
        attempt = self.retry_tracker.get_retry_count(message.id) + 1
        with self._contextualize(message, attempt):
            logger.info(f"Processing message {message.id} (attempt {attempt})")

            try:
                await self.invoker.process(message)
            except MessageProcessingError as e:
                return await self._on_failure(message, e)
            except Exception as e:
                error = MessageProcessingError(f"{type(e).__name__}: {e}")
                return await self._on_failure(message, error)

            return await self._on_success(message)

    async def _dispatch_into(self, message: QueuedMessage, report: PollCycleReport) -> None:
        try:
            report.outcomes[message.id] = await self.dispatch(message)
        except Exception:
            logger.exception(
                f"Unexpected error while handling message {message.id}",
                extra={"error_code": ErrorCode.UNEXPECTED_ERROR},
            )

    async def _on_success(self, message: QueuedMessage) -> MessageOutcome:
        try:
            await self.queue.delete(message.receipt)
        except Exception as e:
            error = as_relay_error(e, ErrorCode.QUEUE_DELETE_ERROR)
            logger.error(
                f"Message {message.id} was processed but could not be deleted. "
                f"It will be delivered again: {error}",
                extra={"error_code": error.code},
            )
        else:
            logger.info(f"Successfully processed and deleted message {message.id}")

        self.retry_tracker.clear_retry_count(message.id)
        return MessageOutcome.PROCESSED

    async def _on_failure(
        self, message: QueuedMessage, error: MessageProcessingError
    ) -> MessageOutcome:
        if error.permanent and self.retry_policy.dead_letter_permanent_failures:
            logger.warning(
                f"Message {message.id} can never succeed, skipping retries: {error}",
                extra={"error_code": error.code},
            )
            return await self._dead_letter(message, str(error))

        # The decision uses the count as it was before this failure.
        retry = self.retry_tracker.should_retry(message.id)
        attempts = self.retry_tracker.increment_retry_count(message.id)
        logger.warning(
            f"Failed to process message {message.id} (attempt {attempts}): {error}",
            extra={"error_code": error.code, "attempt": attempts},
        )

        if retry:
            await self.visibility.extend(message, self.retry_policy.visibility_backoff_secs)
            return MessageOutcome.RETRY_SCHEDULED

        reason = ErrorCode.RETRY_LIMIT_EXCEEDED.describe(str(error))
        return await self._dead_letter(message, reason)

    async def _dead_letter(self, message: QueuedMessage, reason: str) -> MessageOutcome:
        result = await self.dead_letter_router.move_to_dead_letter(message, reason)
        if not result.ok:
            # The count is kept so the next delivery goes straight to the dead-letter move.
            return MessageOutcome.DEAD_LETTER_FAILED

        self.retry_tracker.clear_retry_count(message.id)
        return MessageOutcome.DEAD_LETTERED

    @contextmanager
    def _contextualize(self, message: QueuedMessage, attempt: int) -> Iterator[None]:
        with self.apm.start_trace(name=self.name, headers=message.attributes):
            context = {
                "name": self.name,
                "span_id": self.apm.get_span_id(),
                "trace_id": self.apm.get_trace_id(),
                "message_id": message.id,
                "receipt": message.receipt[-8:],
                "attempt": attempt,
                "delivery_attempt": message.delivery_attempt,
            }
            with logger.contextualize(**context):
                yield
