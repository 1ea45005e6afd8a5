import os
from dataclasses import dataclass

import uvicorn
from pydantic import ValidationError

from fastrelay.exceptions import FastRelayCLIException
from fastrelay.settings import Settings


@dataclass(frozen=True)
class AppConfiguration:
    app: str
    log_level: int
    log_serialize: bool
    apm_provider: str


@dataclass(frozen=True)
class ServerConfiguration:
    host: str
    port: int
    reload: bool
    log_level: int


class ApplicationRunner:
    """Exports the relay options to the environment and serves the app with uvicorn.

    The logger and the APM provider read their configuration from the
    environment at import time, so the variables must be set before the
    application module is imported by the server.
    """

    def run(self, app_configuration: AppConfiguration, server_configuration: ServerConfiguration):
        self._validate_settings()
        self._export_environment(app_configuration)

        uvicorn.run(
            app=app_configuration.app,
            host=server_configuration.host,
            port=server_configuration.port,
            reload=server_configuration.reload,
            log_level=server_configuration.log_level,
            lifespan="on",
        )

    def _validate_settings(self) -> None:
        try:
            Settings()  # type: ignore[call-arg]
        except ValidationError as e:
            raise FastRelayCLIException(
                f"The relay configuration is invalid or incomplete: {e}"
            ) from e

    def _export_environment(self, app_configuration: AppConfiguration) -> None:
        os.environ["FASTRELAY_LOG_LEVEL"] = str(app_configuration.log_level)
        os.environ["FASTRELAY_ENABLE_LOG_SERIALIZE"] = str(int(app_configuration.log_serialize))
        os.environ["FASTRELAY_APM_PROVIDER"] = app_configuration.apm_provider
