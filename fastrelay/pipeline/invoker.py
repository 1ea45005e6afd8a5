import json

import httpx

from fastrelay.datastructures import QueuedMessage, SinkResponse
from fastrelay.exceptions import (
    InvalidMessageError,
    MalformedContentError,
    MessageSizeExceededError,
    SinkConnectionError,
    SinkResponseError,
    SinkTimeoutError,
)
from fastrelay.logger import logger
from fastrelay.types import Sanitizer, Sink


def keep_content(body: bytes) -> bytes:
    return body


class SinkInvoker:
    """Validates a message and forwards its body to the sink.

    Validation runs before any network call. Each failure raises a distinct
    ``MessageProcessingError`` subclass: callers branch on the type or on
    ``error.code``, never on the text.
    """

    def __init__(
        self,
        sink: Sink,
        max_message_size: int = 10_000,
        sanitizer: Sanitizer = keep_content,
    ) -> None:
        self.sink = sink
        self.max_message_size = max_message_size
        self.sanitizer = sanitizer

    async def process(self, message: QueuedMessage | None) -> SinkResponse:
        body = self.validate(message)
        content = self.sanitizer(body)

        try:
            response = await self.sink.post(content)
        except httpx.TimeoutException as e:
            raise SinkTimeoutError(str(e) or type(e).__name__) from e
        except (httpx.RequestError, httpx.InvalidURL, OSError) as e:
            raise SinkConnectionError(str(e) or type(e).__name__) from e

        if not response.successful:
            raise SinkResponseError(response.status_code, response.body[:200])

        logger.debug(f"The sink accepted the message with status {response.status_code}")
        return response

    def validate(self, message: QueuedMessage | None) -> bytes:
        if message is None or message.body is None:
            raise InvalidMessageError("Message or message body cannot be null")

        if len(message.body) > self.max_message_size:
            raise MessageSizeExceededError(
                f"{len(message.body)} bytes is above the {self.max_message_size} bytes limit"
            )

        try:
            json.loads(message.body)
        except (ValueError, UnicodeDecodeError) as e:
            raise MalformedContentError(str(e)) from e

        return message.body
