"""APM integration used to trace poll cycles and message handling."""

import os
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from functools import cache
from typing import Any

from fastrelay.exceptions import ConfigurationError
from fastrelay.logger import logger

try:
    import newrelic.agent

    _new_relic_agent = newrelic.agent
except ModuleNotFoundError:
    _new_relic_agent = None


class ApmProvider(ABC):
    """Contract for an APM backend.

    Every relay operation runs inside ``start_trace``. Providers must never
    raise out of reporting calls: a broken agent cannot stop message flow.
    """

    @abstractmethod
    def start(self) -> None: ...

    @abstractmethod
    def shutdown(self) -> None: ...

    @abstractmethod
    @contextmanager
    def start_trace(self, name: str, headers: dict[str, str] | None = None) -> Iterator[Any]:
        """Opens a background transaction, joining the caller's trace when headers are given."""

    @abstractmethod
    def get_distributed_trace_context(self) -> dict[str, str]:
        """Headers to attach to outgoing messages."""

    @abstractmethod
    def report_custom_event(self, event_name: str, params: dict[str, Any]) -> None: ...

    @abstractmethod
    def get_trace_id(self) -> str | None: ...

    @abstractmethod
    def get_span_id(self) -> str | None: ...

    @abstractmethod
    def active(self) -> bool: ...


class NoOpProvider(ApmProvider):
    def start(self) -> None:
        return None

    def shutdown(self) -> None:
        return None

    @contextmanager
    def start_trace(self, name: str, headers: dict[str, str] | None = None) -> Iterator[Any]:
        yield

    def get_distributed_trace_context(self) -> dict[str, str]:
        return {}

    def report_custom_event(self, event_name: str, params: dict[str, Any]) -> None:
        return None

    def get_trace_id(self) -> str | None:
        return None

    def get_span_id(self) -> str | None:
        return None

    def active(self) -> bool:
        return False


class NewRelicProvider(ApmProvider):
    """APM provider backed by the New Relic agent."""

    def __init__(self) -> None:
        if not _new_relic_agent:
            raise ConfigurationError(
                "No newrelic agent found. "
                "Please install it using 'pip install fastrelay[newrelic]'."
            )

        self._agent = _new_relic_agent

    def start(self) -> None:
        logger.info(f"Starting the New Relic agent for process [{os.getpid()}].")
        if self.active():
            logger.warning("The New Relic agent is already active.")
            return

        try:
            self._agent.initialize()
            self._agent.register_application(timeout=5.0)
        except Exception:
            logger.exception(f"Failed to start New Relic for process [{os.getpid()}].")

    def shutdown(self) -> None:
        try:
            self._agent.shutdown_agent()
        except Exception:
            logger.exception(f"Failed to shutdown New Relic for process [{os.getpid()}].")

    @contextmanager
    def start_trace(self, name: str, headers: dict[str, str] | None = None) -> Iterator[Any]:
        app = self._agent.application(activate=False)
        with self._agent.BackgroundTask(application=app, name=name) as transaction:
            if headers:
                incoming = [(str(k).lower(), str(v)) for k, v in headers.items()]
                self._agent.accept_distributed_trace_headers(incoming, transport_type="Queue")
            yield transaction

    def get_distributed_trace_context(self) -> dict[str, str]:
        headers: list[tuple[str, str]] = []
        self._agent.insert_distributed_trace_headers(headers)
        return dict(headers)

    def report_custom_event(self, event_name: str, params: dict[str, Any]) -> None:
        try:
            self._agent.record_custom_event(event_type=event_name, params=params)
        except Exception:
            logger.exception(f"Failed to record the New Relic custom event {event_name}")

    def get_trace_id(self) -> str | None:
        trace_id = self._agent.current_trace_id()
        return str(trace_id) if trace_id else None

    def get_span_id(self) -> str | None:
        span_id = self._agent.current_span_id()
        return str(span_id) if span_id else None

    def active(self) -> bool:
        application = self._agent.application(activate=False)
        return bool(application) and bool(application.active)


PROVIDER_MAP: dict[str, type[ApmProvider]] = {
    "newrelic": NewRelicProvider,
}


@cache
def get_apm_provider(provider_name: str | None = None) -> ApmProvider:
    name = provider_name or os.getenv("FASTRELAY_APM_PROVIDER")
    name = name.lower() if isinstance(name, str) else ""

    provider_cls = PROVIDER_MAP.get(name, NoOpProvider)
    logger.debug(f"The APM provider selected is: {provider_cls.__name__}")
    return provider_cls()
