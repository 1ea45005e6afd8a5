from fastrelay.datastructures import DeadLetterEnvelope, DeadLetterResult, QueuedMessage
from fastrelay.exceptions import ErrorCode, as_relay_error
from fastrelay.logger import logger
from fastrelay.observability import get_apm_provider
from fastrelay.types import MessageSender, QueueService


class DeadLetterRouter:
    """Moves terminally failed messages to the dead-letter topic.

    The copy is always sent before the source delivery is acknowledged. If
    the send fails the source message stays on the queue. If the
    acknowledgement fails the message exists in both places and the
    dead-letter copy is the authoritative one.
    """

    def __init__(self, queue: QueueService, dead_letter: MessageSender) -> None:
        self.queue = queue
        self.dead_letter = dead_letter

    async def move_to_dead_letter(self, message: QueuedMessage, reason: str) -> DeadLetterResult:
        envelope = DeadLetterEnvelope(
            body=message.body or b"",
            original_message_id=message.id,
            failure_reason=reason,
        )

        try:
            await self.dead_letter.send(envelope.body, envelope.attributes)
        except Exception as e:
            error = as_relay_error(e, ErrorCode.QUEUE_DEAD_LETTER_MOVE_ERROR)
            logger.error(
                f"Failed to move message {message.id} to the dead-letter topic. "
                f"It remains on the source queue: {error}",
                extra={"error_code": ErrorCode.QUEUE_DEAD_LETTER_MOVE_ERROR},
            )
            return DeadLetterResult(ok=False, error=error)

        get_apm_provider().report_custom_event(
            "MessageDeadLettered", {"message_id": message.id, "reason": reason}
        )

        try:
            await self.queue.delete(message.receipt)
        except Exception as e:
            error = as_relay_error(e, ErrorCode.QUEUE_DELETE_ERROR)
            logger.warning(
                f"Message {message.id} was copied to the dead-letter topic but could not be "
                f"removed from the source queue. It may be delivered again: {error}",
                extra={"error_code": ErrorCode.QUEUE_DELETE_ERROR},
            )
            return DeadLetterResult(ok=True, error=error, sent=True, acknowledged=False)

        logger.info(f"Moved message {message.id} to the dead-letter topic with reason: {reason}")
        return DeadLetterResult(ok=True, sent=True, acknowledged=True)
