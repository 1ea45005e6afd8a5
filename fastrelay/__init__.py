"""A FastAPI-based relay that drains a Pub/Sub subscription into an HTTP sink"""

from fastrelay.applications import FastRelay
from fastrelay.broker import RelayBroker
from fastrelay.datastructures import MessageOutcome, QueuedMessage
from fastrelay.pipeline.deadletter import DeadLetterRouter
from fastrelay.pipeline.invoker import SinkInvoker
from fastrelay.pipeline.poller import QueuePoller
from fastrelay.pipeline.visibility import VisibilityExtender
from fastrelay.ratelimit import RateBudget
from fastrelay.retry import RetryTracker
from fastrelay.settings import Settings

__all__ = [
    "FastRelay",
    "RelayBroker",
    "Settings",
    "QueuedMessage",
    "MessageOutcome",
    "RetryTracker",
    "RateBudget",
    "SinkInvoker",
    "VisibilityExtender",
    "DeadLetterRouter",
    "QueuePoller",
]
