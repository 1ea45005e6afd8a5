from collections.abc import Callable
from unittest.mock import AsyncMock

import pytest

from fastrelay.clients.pubsub import PubSubQueue, PubSubTopic
from fastrelay.clients.sink import HttpSink
from fastrelay.datastructures import PollPolicy, QueuedMessage, RetryPolicy, SinkResponse
from fastrelay.pipeline.deadletter import DeadLetterRouter
from fastrelay.pipeline.invoker import SinkInvoker
from fastrelay.pipeline.poller import QueuePoller
from fastrelay.pipeline.visibility import VisibilityExtender
from fastrelay.ratelimit import RateBudget
from fastrelay.retry import RetryTracker
from fastrelay.settings import Settings

MessageFactory = Callable[..., QueuedMessage]


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def make_message() -> MessageFactory:
    def _make(
        message_id: str = "m-1",
        body: bytes | None = b'{"a":1}',
        attributes: dict[str, str] | None = None,
        delivery_attempt: int = 0,
    ) -> QueuedMessage:
        return QueuedMessage(
            id=message_id,
            body=body,
            receipt=f"ack-{message_id}",
            attributes=attributes or {},
            delivery_attempt=delivery_attempt,
        )

    return _make


@pytest.fixture
def queue() -> AsyncMock:
    queue = AsyncMock(spec=PubSubQueue)
    queue.receive.return_value = []
    queue.send.return_value = "source-1"
    return queue


@pytest.fixture
def dead_letter() -> AsyncMock:
    dead_letter = AsyncMock(spec=PubSubTopic)
    dead_letter.send.return_value = "dlq-1"
    return dead_letter


@pytest.fixture
def sink() -> AsyncMock:
    sink = AsyncMock(spec=HttpSink)
    sink.post.return_value = SinkResponse(status_code=200, body="ok")
    return sink


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def build_poller(queue: AsyncMock, dead_letter: AsyncMock, sink: AsyncMock, clock: FakeClock):
    def _build(
        max_retries: int = 3,
        rate_limit: int = 100,
        dead_letter_permanent_failures: bool = False,
        concurrent_dispatch: bool = True,
    ) -> QueuePoller:
        return QueuePoller(
            queue=queue,
            invoker=SinkInvoker(sink),
            retry_tracker=RetryTracker(max_retries=max_retries),
            visibility=VisibilityExtender(queue),
            dead_letter_router=DeadLetterRouter(queue, dead_letter),
            rate_budget=RateBudget(limit=rate_limit, interval_secs=1.0, clock=clock),
            poll_policy=PollPolicy(concurrent_dispatch=concurrent_dispatch),
            retry_policy=RetryPolicy(
                max_retries=max_retries,
                visibility_backoff_secs=30,
                dead_letter_permanent_failures=dead_letter_permanent_failures,
            ),
            name="test-sub",
        )

    return _build


@pytest.fixture
def settings() -> Settings:
    return Settings(
        project_id="test-project",
        subscription_name="test-sub",
        topic_name="test-topic",
        dead_letter_topic="test-dlq",
        sink_url="http://sink.local/api/process",
        _env_file=None,
    )
