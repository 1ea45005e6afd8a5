import anyio
from anyio import get_cancelled_exc_class

from fastrelay.datastructures import PollCycleReport
from fastrelay.logger import logger
from fastrelay.pipeline.poller import QueuePoller
from fastrelay.types import SleepCallable


class PollTask:
    """Runs poll cycles one after another with a fixed delay between them.

    A cycle only starts after the previous one has finished, so cycles
    never overlap. ``sleep`` is injectable so tests can drive the loop
    without waiting.
    """

    def __init__(
        self,
        poller: QueuePoller,
        interval_secs: float = 1.0,
        sleep: SleepCallable = anyio.sleep,
        max_cycles: int | None = None,
    ) -> None:
        self.ready = False
        self.running = False
        self.cycles = 0
        self.poller = poller
        self.interval_secs = interval_secs
        self.max_cycles = max_cycles
        self._sleep = sleep

    async def start(self) -> None:
        logger.debug(f"The message poll loop started for {self.poller.name}")

        self.running = True
        while self.running:
            try:
                report = await self.poller.poll()
                self._on_report(report)
            except get_cancelled_exc_class():
                logger.debug("We got a cancellation from parent, stopping the poll loop")
                self.shutdown()
                raise
            except Exception:
                self.ready = False
                logger.exception("An unexpected error happened during the poll cycle.")

            self.cycles += 1
            if self.max_cycles is not None and self.cycles >= self.max_cycles:
                self.shutdown()
                break

            await self._sleep(self.interval_secs)

        logger.debug(f"The message poll loop stopped for {self.poller.name}")

    def _on_report(self, report: PollCycleReport) -> None:
        if report.skipped:
            return

        self.ready = report.error is None

    def task_ready(self) -> bool:
        return self.ready

    def task_alive(self) -> bool:
        return self.running

    def shutdown(self) -> None:
        self.running = False
