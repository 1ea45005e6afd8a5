"""Broker implementation."""

from typing import Any

from pydantic import BaseModel, ConfigDict, InstanceOf, validate_call

from fastrelay.clients.pubsub import PubSubQueue, PubSubTopic
from fastrelay.clients.sink import HttpSink
from fastrelay.concurrency.tasks import PollTask
from fastrelay.logger import logger
from fastrelay.pipeline.deadletter import DeadLetterRouter
from fastrelay.pipeline.invoker import SinkInvoker, keep_content
from fastrelay.pipeline.poller import QueuePoller
from fastrelay.pipeline.visibility import VisibilityExtender
from fastrelay.process import PollLoopInfo, RelayInfo, get_apm_info, get_process_info
from fastrelay.publisher import Publisher
from fastrelay.ratelimit import RateBudget
from fastrelay.retry import RetryTracker
from fastrelay.settings import Settings
from fastrelay.types import MessageSender, QueueService, Sanitizer, Sink, SleepCallable


class RelayBroker:
    """Builds the relay pipeline from settings and owns its poll loop.

    The retry tracker and the rate budget are created once here and shared
    by every component that needs them. Collaborators passed explicitly
    replace the Pub/Sub and HTTP defaults.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        queue: QueueService | None = None,
        dead_letter: MessageSender | None = None,
        sink: Sink | None = None,
        sanitizer: Sanitizer = keep_content,
        sleep: SleepCallable | None = None,
    ) -> None:
        self.settings = settings

        self.queue: QueueService = queue or PubSubQueue(
            project_id=settings.project_id,
            subscription_name=settings.subscription_name,
            topic_name=settings.topic_name,
        )
        self.dead_letter: MessageSender = dead_letter or PubSubTopic(
            project_id=settings.project_id, topic_name=settings.dead_letter_topic
        )
        self.sink: Sink = sink or HttpSink(
            settings.sink_url, timeout_secs=settings.sink_timeout_secs
        )

        rate_limit_policy = settings.rate_limit_policy()
        self.retry_tracker = RetryTracker(max_retries=settings.max_retries)
        self.rate_budget = RateBudget(
            limit=rate_limit_policy.limit, interval_secs=rate_limit_policy.interval_secs
        )

        self.poller = QueuePoller(
            queue=self.queue,
            invoker=SinkInvoker(
                self.sink,
                max_message_size=settings.sink_policy().max_message_size,
                sanitizer=sanitizer,
            ),
            retry_tracker=self.retry_tracker,
            visibility=VisibilityExtender(self.queue),
            dead_letter_router=DeadLetterRouter(self.queue, self.dead_letter),
            rate_budget=self.rate_budget,
            poll_policy=settings.poll_policy(),
            retry_policy=settings.retry_policy(),
            name=settings.subscription_name,
        )

        task_options: dict[str, Any] = {"interval_secs": settings.poll_interval_secs}
        if sleep is not None:
            task_options["sleep"] = sleep
        self.task = PollTask(self.poller, **task_options)
        self.publisher = Publisher(self.queue)

    async def start(self) -> None:
        if self.settings.autocreate:
            await self._autocreate()

        logger.info(
            f"Relaying messages from {self.settings.subscription_name} to {self.settings.sink_url}"
        )
        await self.task.start()

    async def _autocreate(self) -> None:
        if isinstance(self.queue, PubSubQueue):
            await self.queue.create_subscription()

        if isinstance(self.dead_letter, PubSubTopic):
            await self.dead_letter.create()

    async def shutdown(self) -> None:
        self.task.shutdown()
        if isinstance(self.sink, HttpSink):
            await self.sink.close()

    @validate_call(config=ConfigDict(strict=True, arbitrary_types_allowed=True))
    async def publish(
        self,
        data: InstanceOf[BaseModel] | dict[str, Any] | str | bytes,
        attributes: dict[str, str] | None = None,
    ) -> str:
        return await self.publisher.publish(data, attributes=attributes)

    def alive(self) -> bool:
        alive = self.task.task_alive()
        if not alive:
            logger.error(f"The {self.poller.name} poll loop is not alive")
        return alive

    def ready(self) -> bool:
        ready = self.task.task_ready()
        if not ready:
            logger.info(f"The {self.poller.name} poll loop is not ready")
        return ready

    def info(self) -> RelayInfo:
        poll_loop = PollLoopInfo(
            subscription=self.settings.subscription_name,
            dead_letter_topic=self.settings.dead_letter_topic,
            alive=self.task.task_alive(),
            ready=self.task.task_ready(),
            cycles=self.task.cycles,
            tracked_messages=len(self.retry_tracker),
            available_rate_budget=round(self.rate_budget.available, 2),
        )
        return RelayInfo(apm=get_apm_info(), process=get_process_info(), poll_loop=poll_loop)
