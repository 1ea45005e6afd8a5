from unittest.mock import AsyncMock

import pytest

from fastrelay.datastructures import (
    FAILURE_REASON_ATTRIBUTE,
    ORIGINAL_MESSAGE_ID_ATTRIBUTE,
    MessageOutcome,
    RetryPolicy,
    SinkResponse,
)
from fastrelay.exceptions import ConfigurationError, ErrorCode, QueueServiceError
from fastrelay.logger import logger
from fastrelay.pipeline.deadletter import DeadLetterRouter
from fastrelay.pipeline.invoker import SinkInvoker
from fastrelay.pipeline.poller import QueuePoller
from fastrelay.pipeline.visibility import VisibilityExtender
from fastrelay.ratelimit import RateBudget
from fastrelay.retry import RetryTracker


class TestQueuePollerDispatch:
    @pytest.mark.asyncio
    async def test_success_deletes_and_clears(
        self, build_poller, queue: AsyncMock, dead_letter: AsyncMock, make_message
    ):
        poller = build_poller()
        message = make_message()
        poller.retry_tracker.increment_retry_count(message.id)

        outcome = await poller.dispatch(message)

        assert outcome == MessageOutcome.PROCESSED
        queue.delete.assert_awaited_once_with("ack-m-1")
        dead_letter.send.assert_not_awaited()
        assert poller.retry_tracker.get_retry_count(message.id) == 0

    @pytest.mark.asyncio
    async def test_failed_delete_after_success_is_still_processed(
        self, build_poller, queue: AsyncMock, make_message
    ):
        queue.delete.side_effect = QueueServiceError("gone", code=ErrorCode.QUEUE_DELETE_ERROR)
        poller = build_poller()

        outcome = await poller.dispatch(make_message())

        assert outcome == MessageOutcome.PROCESSED
        assert len(poller.retry_tracker) == 0

    @pytest.mark.asyncio
    async def test_malformed_message_is_retried(
        self, build_poller, queue: AsyncMock, sink: AsyncMock, make_message
    ):
        poller = build_poller()
        message = make_message(body=b"{bad json")

        outcome = await poller.dispatch(message)

        assert outcome == MessageOutcome.RETRY_SCHEDULED
        sink.post.assert_not_awaited()
        queue.change_visibility.assert_awaited_once_with("ack-m-1", 30)
        queue.delete.assert_not_awaited()
        assert poller.retry_tracker.get_retry_count(message.id) == 1

    @pytest.mark.asyncio
    async def test_retries_are_bounded_then_dead_lettered(
        self,
        build_poller,
        queue: AsyncMock,
        dead_letter: AsyncMock,
        sink: AsyncMock,
        make_message,
    ):
        sink.post.return_value = SinkResponse(status_code=500, body="internal error")
        poller = build_poller(max_retries=3)
        message = make_message()

        outcomes = [await poller.dispatch(message) for _ in range(4)]

        assert outcomes == [MessageOutcome.RETRY_SCHEDULED] * 3 + [MessageOutcome.DEAD_LETTERED]
        assert queue.change_visibility.await_count == 3
        dead_letter.send.assert_awaited_once()
        queue.delete.assert_awaited_once_with("ack-m-1")

        body, attributes = dead_letter.send.await_args.args
        assert body == b'{"a":1}'
        assert attributes[ORIGINAL_MESSAGE_ID_ATTRIBUTE] == "m-1"
        assert attributes[FAILURE_REASON_ATTRIBUTE].startswith("[RTY-3001]")
        assert poller.retry_tracker.get_retry_count(message.id) == 0

    @pytest.mark.asyncio
    async def test_zero_retries_dead_letters_on_first_failure(
        self, build_poller, queue: AsyncMock, dead_letter: AsyncMock, sink: AsyncMock, make_message
    ):
        sink.post.return_value = SinkResponse(status_code=400)
        poller = build_poller(max_retries=0)

        outcome = await poller.dispatch(make_message())

        assert outcome == MessageOutcome.DEAD_LETTERED
        queue.change_visibility.assert_not_awaited()
        dead_letter.send.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_dead_letter_send_keeps_message_and_count(
        self,
        build_poller,
        queue: AsyncMock,
        dead_letter: AsyncMock,
        sink: AsyncMock,
        make_message,
    ):
        sink.post.return_value = SinkResponse(status_code=503)
        dead_letter.send.side_effect = QueueServiceError(
            "unavailable", code=ErrorCode.QUEUE_SEND_ERROR
        )
        poller = build_poller(max_retries=0)
        message = make_message()

        outcome = await poller.dispatch(message)

        assert outcome == MessageOutcome.DEAD_LETTER_FAILED
        queue.delete.assert_not_awaited()
        assert poller.retry_tracker.get_retry_count(message.id) == 1

        dead_letter.send.side_effect = None
        outcome = await poller.dispatch(message)

        assert outcome == MessageOutcome.DEAD_LETTERED
        queue.delete.assert_awaited_once_with("ack-m-1")
        assert poller.retry_tracker.get_retry_count(message.id) == 0

    @pytest.mark.asyncio
    async def test_permanent_failures_stay_on_the_retry_path_by_default(
        self, build_poller, queue: AsyncMock, dead_letter: AsyncMock, make_message
    ):
        poller = build_poller()

        outcome = await poller.dispatch(make_message(body=None))

        assert outcome == MessageOutcome.RETRY_SCHEDULED
        dead_letter.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_permanent_failures_can_skip_retries(
        self, build_poller, queue: AsyncMock, dead_letter: AsyncMock, make_message
    ):
        poller = build_poller(dead_letter_permanent_failures=True)

        outcome = await poller.dispatch(make_message(body=None))

        assert outcome == MessageOutcome.DEAD_LETTERED
        queue.change_visibility.assert_not_awaited()
        reason = dead_letter.send.await_args.args[1][FAILURE_REASON_ATTRIBUTE]
        assert "MSG-2002" in reason

    @pytest.mark.asyncio
    async def test_transient_failures_ignore_the_permanent_switch(
        self, build_poller, dead_letter: AsyncMock, sink: AsyncMock, make_message
    ):
        sink.post.return_value = SinkResponse(status_code=500)
        poller = build_poller(dead_letter_permanent_failures=True)

        outcome = await poller.dispatch(make_message())

        assert outcome == MessageOutcome.RETRY_SCHEDULED
        dead_letter.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unexpected_sink_error_is_retried(
        self, build_poller, sink: AsyncMock, make_message
    ):
        sink.post.side_effect = ValueError("unexpected")
        poller = build_poller()

        outcome = await poller.dispatch(make_message())

        assert outcome == MessageOutcome.RETRY_SCHEDULED

    @pytest.mark.asyncio
    async def test_visibility_failure_does_not_stop_the_retry(
        self, build_poller, queue: AsyncMock, sink: AsyncMock, make_message
    ):
        sink.post.return_value = SinkResponse(status_code=500)
        queue.change_visibility.side_effect = QueueServiceError(
            "expired", code=ErrorCode.QUEUE_VISIBILITY_UPDATE_ERROR
        )
        poller = build_poller()
        message = make_message()

        outcome = await poller.dispatch(message)

        assert outcome == MessageOutcome.RETRY_SCHEDULED
        assert poller.retry_tracker.get_retry_count(message.id) == 1


class TestQueuePollerConfiguration:
    def test_retry_policy_must_match_the_tracker(
        self, queue: AsyncMock, dead_letter: AsyncMock, sink: AsyncMock
    ):
        with pytest.raises(ConfigurationError):
            QueuePoller(
                queue=queue,
                invoker=SinkInvoker(sink),
                retry_tracker=RetryTracker(max_retries=3),
                visibility=VisibilityExtender(queue),
                dead_letter_router=DeadLetterRouter(queue, dead_letter),
                rate_budget=RateBudget(limit=10),
                retry_policy=RetryPolicy(max_retries=5),
            )

    def test_retry_policy_defaults_to_the_tracker_limit(
        self, queue: AsyncMock, dead_letter: AsyncMock, sink: AsyncMock
    ):
        poller = QueuePoller(
            queue=queue,
            invoker=SinkInvoker(sink),
            retry_tracker=RetryTracker(max_retries=2),
            visibility=VisibilityExtender(queue),
            dead_letter_router=DeadLetterRouter(queue, dead_letter),
            rate_budget=RateBudget(limit=10),
        )

        assert poller.retry_policy.max_retries == 2


class TestQueuePollerCycle:
    @pytest.mark.asyncio
    async def test_poll_receives_and_dispatches(self, build_poller, queue: AsyncMock, make_message):
        queue.receive.return_value = [make_message()]
        poller = build_poller()

        report = await poller.poll()

        assert report.skipped is False
        assert report.received == 1
        assert report.error is None
        assert report.outcomes == {"m-1": MessageOutcome.PROCESSED}
        queue.receive.assert_awaited_once_with(10, 20.0)

    @pytest.mark.asyncio
    async def test_empty_poll(self, build_poller, queue: AsyncMock):
        poller = build_poller()

        report = await poller.poll()

        assert report.received == 0
        assert report.outcomes == {}

    @pytest.mark.asyncio
    async def test_exhausted_rate_budget_skips_the_cycle(
        self, build_poller, queue: AsyncMock, clock
    ):
        poller = build_poller(rate_limit=1)

        first = await poller.poll()
        second = await poller.poll()

        assert first.skipped is False
        assert second.skipped is True
        queue.receive.assert_awaited_once()

        clock.advance(1.0)
        third = await poller.poll()
        assert third.skipped is False
        assert queue.receive.await_count == 2

    @pytest.mark.asyncio
    async def test_receive_failure_is_reported_and_next_cycle_runs(
        self, build_poller, queue: AsyncMock, make_message
    ):
        queue.receive.side_effect = [
            QueueServiceError("unavailable", code=ErrorCode.QUEUE_RECEIVE_ERROR),
            [make_message()],
        ]
        poller = build_poller()

        failed = await poller.poll()
        recovered = await poller.poll()

        assert failed.error.code == ErrorCode.QUEUE_RECEIVE_ERROR
        assert failed.received == 0
        assert recovered.error is None
        assert recovered.outcomes == {"m-1": MessageOutcome.PROCESSED}

    @pytest.mark.asyncio
    async def test_unexpected_receive_error_is_coded(self, build_poller, queue: AsyncMock):
        queue.receive.side_effect = RuntimeError("socket closed")
        poller = build_poller()

        report = await poller.poll()

        assert isinstance(report.error, QueueServiceError)
        assert report.error.code == ErrorCode.QUEUE_RECEIVE_ERROR

    @pytest.mark.asyncio
    @pytest.mark.parametrize("concurrent_dispatch", [True, False])
    async def test_messages_of_a_batch_are_isolated(
        self,
        build_poller,
        queue: AsyncMock,
        dead_letter: AsyncMock,
        make_message,
        concurrent_dispatch: bool,
    ):
        queue.receive.return_value = [
            make_message("good-1"),
            make_message("bad", body=b"not json"),
            make_message("good-2", body=b'{"b":2}'),
        ]
        poller = build_poller(concurrent_dispatch=concurrent_dispatch)

        report = await poller.poll()

        assert report.received == 3
        assert report.outcomes == {
            "good-1": MessageOutcome.PROCESSED,
            "bad": MessageOutcome.RETRY_SCHEDULED,
            "good-2": MessageOutcome.PROCESSED,
        }
        assert queue.delete.await_count == 2
        queue.change_visibility.assert_awaited_once_with("ack-bad", 30)
        dead_letter.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_dispatch_runs_inside_a_log_context(
        self, build_poller, sink: AsyncMock, make_message
    ):
        seen: dict = {}

        async def post(_body):
            seen.update(logger.current_context())
            return SinkResponse(status_code=200)

        sink.post.side_effect = post
        poller = build_poller()

        await poller.dispatch(make_message("m-9", delivery_attempt=4))

        assert seen["message_id"] == "m-9"
        assert seen["attempt"] == 1
        assert seen["delivery_attempt"] == 4
        assert seen["receipt"] == "ack-m-9"
        assert logger.current_context() == {}
