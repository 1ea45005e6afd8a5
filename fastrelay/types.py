from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

from fastrelay.datastructures import QueuedMessage, SinkResponse

NoArgAsyncCallable = Callable[[], Awaitable[None]]
SleepCallable = Callable[[float], Awaitable[None]]
Clock = Callable[[], float]
Sanitizer = Callable[[bytes], bytes]


@runtime_checkable
class MessageSender(Protocol):
    async def send(self, body: bytes, attributes: dict[str, str] | None = None) -> str: ...


@runtime_checkable
class QueueService(MessageSender, Protocol):
    async def receive(self, max_messages: int, wait_seconds: float) -> list[QueuedMessage]: ...

    async def delete(self, receipt: str) -> None: ...

    async def change_visibility(self, receipt: str, timeout_secs: int) -> None: ...


@runtime_checkable
class Sink(Protocol):
    async def post(self, body: bytes) -> SinkResponse: ...
