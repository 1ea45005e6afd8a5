from contextlib import suppress

from google.api_core.exceptions import (
    Aborted,
    AlreadyExists,
    DeadlineExceeded,
    GatewayTimeout,
    GoogleAPICallError,
    InternalServerError,
    ResourceExhausted,
    ServiceUnavailable,
    Unknown,
    from_grpc_error,
)
from google.pubsub_v1 import (
    PublisherAsyncClient,
    PubsubMessage,
    ReceivedMessage,
    SubscriberAsyncClient,
    Subscription,
)
from grpc import RpcError

from fastrelay.datastructures import QueuedMessage
from fastrelay.exceptions import ErrorCode, QueueServiceError
from fastrelay.logger import logger

RETRYABLE_GCP_EXCEPTIONS = (
    Aborted,
    DeadlineExceeded,
    GatewayTimeout,
    InternalServerError,
    ResourceExhausted,
    ServiceUnavailable,
    Unknown,
)


def translate_error(exception: Exception, code: ErrorCode) -> QueueServiceError:
    """Wraps a Google API or gRPC failure into a coded QueueServiceError."""
    wrapped_exception = exception
    if isinstance(exception, RpcError) and not isinstance(exception, GoogleAPICallError):
        wrapped_exception = from_grpc_error(exception)  # type: ignore[no-untyped-call]

    retryable = isinstance(wrapped_exception, RETRYABLE_GCP_EXCEPTIONS) or not isinstance(
        wrapped_exception, GoogleAPICallError
    )
    detail = f"{type(wrapped_exception).__name__}: {wrapped_exception}"
    return QueueServiceError(detail, code=code, retryable=retryable)


class PubSubTopic:
    """Publishes raw payloads to one Pub/Sub topic."""

    def __init__(self, project_id: str, topic_name: str) -> None:
        self.project_id = project_id
        self.topic_name = topic_name
        self._client: PublisherAsyncClient | None = None

    @property
    def client(self) -> PublisherAsyncClient:
        if self._client is None:
            self._client = PublisherAsyncClient()
        return self._client

    @property
    def topic_path(self) -> str:
        return PublisherAsyncClient.topic_path(self.project_id, self.topic_name)

    async def send(self, body: bytes, attributes: dict[str, str] | None = None) -> str:
        message = PubsubMessage(data=body, attributes=attributes or {})
        try:
            response = await self.client.publish(topic=self.topic_path, messages=[message])
        except (GoogleAPICallError, RpcError) as e:
            raise translate_error(e, ErrorCode.QUEUE_SEND_ERROR) from e

        message_id = response.message_ids[0]
        logger.debug(f"Message published on {self.topic_path} with id {message_id}")
        return message_id

    async def create(self) -> None:
        with suppress(AlreadyExists):
            logger.debug(f"Creating topic '{self.topic_path}'.")
            await self.client.create_topic(name=self.topic_path)
            logger.debug(f"Created topic '{self.topic_path}' successfully.")


class PubSubQueue:
    """The queue service on top of a Pub/Sub subscription.

    The receipt token is the delivery ``ack_id``. Deleting acknowledges the
    delivery and extending visibility modifies its ack deadline. Sends go to
    the topic the subscription is attached to.
    """

    def __init__(
        self,
        project_id: str,
        subscription_name: str,
        topic_name: str,
        ack_deadline_seconds: int = 60,
    ) -> None:
        self.project_id = project_id
        self.subscription_name = subscription_name
        self.ack_deadline_seconds = ack_deadline_seconds
        self.topic = PubSubTopic(project_id, topic_name)
        self._client: SubscriberAsyncClient | None = None

    @property
    def client(self) -> SubscriberAsyncClient:
        if self._client is None:
            self._client = SubscriberAsyncClient()
        return self._client

    @property
    def subscription_path(self) -> str:
        return SubscriberAsyncClient.subscription_path(self.project_id, self.subscription_name)

    async def receive(self, max_messages: int, wait_seconds: float) -> list[QueuedMessage]:
        try:
            response = await self.client.pull(
                subscription=self.subscription_path,
                max_messages=max_messages,
                timeout=wait_seconds,
            )
        except DeadlineExceeded:
            # An empty long poll ends with a deadline on the emulator and some regions.
            return []
        except (GoogleAPICallError, RpcError) as e:
            raise translate_error(e, ErrorCode.QUEUE_RECEIVE_ERROR) from e

        return [self._deserialize_message(m) for m in response.received_messages]

    async def delete(self, receipt: str) -> None:
        try:
            await self.client.acknowledge(subscription=self.subscription_path, ack_ids=[receipt])
        except (GoogleAPICallError, RpcError) as e:
            raise translate_error(e, ErrorCode.QUEUE_DELETE_ERROR) from e

    async def change_visibility(self, receipt: str, timeout_secs: int) -> None:
        try:
            await self.client.modify_ack_deadline(
                subscription=self.subscription_path,
                ack_ids=[receipt],
                ack_deadline_seconds=timeout_secs,
            )
        except (GoogleAPICallError, RpcError) as e:
            raise translate_error(e, ErrorCode.QUEUE_VISIBILITY_UPDATE_ERROR) from e

    async def send(self, body: bytes, attributes: dict[str, str] | None = None) -> str:
        return await self.topic.send(body, attributes)

    async def create_subscription(self) -> None:
        await self.topic.create()

        request = Subscription(
            name=self.subscription_path,
            topic=self.topic.topic_path,
            ack_deadline_seconds=self.ack_deadline_seconds,
        )
        with suppress(AlreadyExists):
            logger.debug(f"Attempting to create subscription: {request.name}")
            await self.client.create_subscription(request=request)
            logger.debug(f"Successfully created subscription: {request.name}")

    def _deserialize_message(self, received_message: ReceivedMessage) -> QueuedMessage:
        wrapped_message = received_message.message

        delivery_attempt = 0
        if received_message.delivery_attempt:
            delivery_attempt = received_message.delivery_attempt

        return QueuedMessage(
            id=wrapped_message.message_id,
            body=wrapped_message.data,
            receipt=received_message.ack_id,
            attributes=dict(wrapped_message.attributes),
            delivery_attempt=delivery_attempt,
        )
