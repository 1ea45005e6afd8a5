import os

import psutil
from pydantic import BaseModel

from fastrelay.logger import logger
from fastrelay.observability import get_apm_provider


class ProcessInfo(BaseModel):
    pid: int
    name: str
    num_threads: int = 0
    running: bool = False
    memory_rss_bytes: int = 0


class APMInfo(BaseModel):
    active: bool
    provider: str


class PollLoopInfo(BaseModel):
    subscription: str
    dead_letter_topic: str
    alive: bool
    ready: bool
    cycles: int
    tracked_messages: int
    available_rate_budget: float


class RelayInfo(BaseModel):
    apm: APMInfo
    process: ProcessInfo
    poll_loop: PollLoopInfo


def get_apm_info() -> APMInfo:
    apm = get_apm_provider()
    return APMInfo(active=apm.active(), provider=apm.__class__.__name__)


def get_process_info(pid: int | None = None) -> ProcessInfo:
    pid = pid or os.getpid()
    try:
        process = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return ProcessInfo(pid=pid, name="unknown")

    try:
        with process.oneshot():
            return ProcessInfo(
                pid=pid,
                name=process.name(),
                num_threads=process.num_threads(),
                running=process.is_running(),
                memory_rss_bytes=process.memory_info().rss,
            )
    except psutil.AccessDenied:
        logger.warning(f"We lack the permissions to inspect the process {pid}.")
        return ProcessInfo(pid=pid, name="unknown", running=True)
