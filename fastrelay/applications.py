import inspect
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import Any

import anyio
from anyio.abc import TaskGroup
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_200_OK,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_502_BAD_GATEWAY,
)
from starlette.types import Lifespan

from fastrelay.__about__ import __version__
from fastrelay.broker import RelayBroker
from fastrelay.exceptions import RelayError
from fastrelay.logger import logger
from fastrelay.observability import get_apm_provider
from fastrelay.types import NoArgAsyncCallable


def _ensure_async_hook(func: Any) -> None:
    if not inspect.iscoroutinefunction(func):
        raise TypeError(f"Lifecycle hook {func!r} must be an async function")


class Application:
    """Lifecycle hooks around the broker's poll loop."""

    def __init__(
        self,
        broker: RelayBroker,
        on_startup: Sequence[NoArgAsyncCallable] | None = None,
        on_shutdown: Sequence[NoArgAsyncCallable] | None = None,
        after_startup: Sequence[NoArgAsyncCallable] | None = None,
        after_shutdown: Sequence[NoArgAsyncCallable] | None = None,
    ):
        self.broker = broker

        self._on_startup: list[NoArgAsyncCallable] = []
        self._on_shutdown: list[NoArgAsyncCallable] = []
        self._after_startup: list[NoArgAsyncCallable] = []
        self._after_shutdown: list[NoArgAsyncCallable] = []

        for func in on_startup or ():
            self.on_startup(func)
        for func in on_shutdown or ():
            self.on_shutdown(func)
        for func in after_startup or ():
            self.after_startup(func)
        for func in after_shutdown or ():
            self.after_shutdown(func)

    def on_startup(self, func: NoArgAsyncCallable) -> NoArgAsyncCallable:
        _ensure_async_hook(func)
        self._on_startup.append(func)
        return func

    def on_shutdown(self, func: NoArgAsyncCallable) -> NoArgAsyncCallable:
        _ensure_async_hook(func)
        self._on_shutdown.append(func)
        return func

    def after_startup(self, func: NoArgAsyncCallable) -> NoArgAsyncCallable:
        _ensure_async_hook(func)
        self._after_startup.append(func)
        return func

    def after_shutdown(self, func: NoArgAsyncCallable) -> NoArgAsyncCallable:
        _ensure_async_hook(func)
        self._after_shutdown.append(func)
        return func

    async def _start(self, task_group: TaskGroup) -> None:
        apm = get_apm_provider()
        apm.start()

        logger.info("Starting FastRelay")
        for func in self._on_startup:
            await func()

        task_group.start_soon(self.broker.start)

        for func in self._after_startup:
            await func()
        logger.info("FastRelay started")

    async def _shutdown(self) -> None:
        logger.info("Terminating FastRelay")
        for func in self._on_shutdown:
            await func()

        await self.broker.shutdown()

        for func in self._after_shutdown:
            await func()

        get_apm_provider().shutdown()
        logger.info("FastRelay terminated")

    @asynccontextmanager
    async def lifecycle(self) -> AsyncIterator[None]:
        async with anyio.create_task_group() as tg:
            await self._start(tg)
            try:
                yield
            finally:
                await self._shutdown()
                tg.cancel_scope.cancel()


class FastRelay(FastAPI, Application):
    def __init__(
        self,
        broker: RelayBroker,
        *,
        on_startup: Sequence[NoArgAsyncCallable] | None = None,
        on_shutdown: Sequence[NoArgAsyncCallable] | None = None,
        after_startup: Sequence[NoArgAsyncCallable] | None = None,
        after_shutdown: Sequence[NoArgAsyncCallable] | None = None,
        title: str = "FastRelay",
        version: str = __version__,
        info_url: str = "/consumers/info",
        liveness_url: str = "/consumers/alive",
        readiness_url: str = "/consumers/ready",
        publish_url: str = "/api/messages",
        lifespan: Lifespan["FastRelay"] | None = None,
        **extra: Any,
    ):
        FastAPI.__init__(self, title=title, version=version, lifespan=self.run, **extra)
        Application.__init__(
            self,
            broker,
            on_startup=on_startup,
            on_shutdown=on_shutdown,
            after_startup=after_startup,
            after_shutdown=after_shutdown,
        )

        self.lifespan_context_override = lifespan
        self.add_api_route(path=info_url, endpoint=self._get_info, methods=["GET"])
        self.add_api_route(path=liveness_url, endpoint=self._get_liveness, methods=["GET"])
        self.add_api_route(path=readiness_url, endpoint=self._get_readiness, methods=["GET"])
        self.add_api_route(path=publish_url, endpoint=self._publish, methods=["POST"])

    @asynccontextmanager
    async def run(self, app: "FastRelay") -> AsyncIterator[None]:
        if not self.lifespan_context_override:
            async with self.lifecycle():
                yield
        else:
            async with self.lifespan_context_override(app):
                async with self.lifecycle():
                    yield

    async def _get_info(self, _: Request) -> JSONResponse:
        info = self.broker.info()
        return JSONResponse(content=info.model_dump())

    async def _get_liveness(self, _: Request) -> JSONResponse:
        alive = self.broker.alive()

        status_code = HTTP_200_OK
        if not alive:
            status_code = HTTP_500_INTERNAL_SERVER_ERROR

        return JSONResponse(content={"alive": alive}, status_code=status_code)

    async def _get_readiness(self, _: Request) -> JSONResponse:
        ready = self.broker.ready()

        status_code = HTTP_200_OK
        if not ready:
            status_code = HTTP_500_INTERNAL_SERVER_ERROR

        return JSONResponse(content={"ready": ready}, status_code=status_code)

    async def _publish(self, request: Request) -> JSONResponse:
        body = await request.body()
        try:
            message_id = await self.broker.publish(body)
        except RelayError as e:
            logger.error(f"Failed to publish message: {e}", extra={"error_code": e.code})
            return JSONResponse(
                content={"error_code": e.code, "detail": str(e)},
                status_code=HTTP_502_BAD_GATEWAY,
            )

        return JSONResponse(content={"message_id": message_id})
