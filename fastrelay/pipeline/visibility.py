from fastrelay.datastructures import OperationResult, QueuedMessage
from fastrelay.exceptions import ErrorCode, as_relay_error
from fastrelay.logger import logger
from fastrelay.types import QueueService


class VisibilityExtender:
    """Hides an in-flight delivery from other consumers for a while longer.

    A failed extension only means the message may be redelivered early, so
    errors are logged and returned, never raised.
    """

    def __init__(self, queue: QueueService) -> None:
        self.queue = queue

    async def extend(self, message: QueuedMessage, timeout_secs: int) -> OperationResult:
        try:
            await self.queue.change_visibility(message.receipt, timeout_secs)
        except Exception as e:
            error = as_relay_error(e, ErrorCode.QUEUE_VISIBILITY_UPDATE_ERROR)
            logger.error(
                f"Failed to change the visibility of message {message.id} "
                f"to {timeout_secs} seconds: {error}",
                extra={"error_code": error.code},
            )
            return OperationResult(ok=False, error=error)

        logger.debug(f"Changed visibility timeout for message {message.id} to {timeout_secs}s")
        return OperationResult(ok=True)
