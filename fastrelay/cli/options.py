from typing import Annotated

import typer

from fastrelay.cli.utils import APMProviders, LogLevels

CLIContext = typer.Context

AppArgument = Annotated[
    str,
    typer.Argument(
        help="The application to run, as an import string in the 'module:attribute' format.",
        show_default=True,
    ),
]

AppVersionOption = Annotated[
    bool,
    typer.Option("--version", "-v", help="Show the version and exit.", is_eager=True),
]

AppHostOption = Annotated[str, typer.Option(help="The host to bind the server to.")]

AppPortOption = Annotated[int, typer.Option(help="The port to bind the server to.")]

AppHotReloadOption = Annotated[
    bool, typer.Option("--reload", help="Restart the server when the code changes.")
]

AppLogLevelOption = Annotated[
    LogLevels,
    typer.Option(case_sensitive=False, help="The log level of the relay logger."),
]

AppServerLogLevelOption = Annotated[
    LogLevels,
    typer.Option(case_sensitive=False, help="The log level of the uvicorn server."),
]

AppLogSerializeOption = Annotated[
    bool, typer.Option("--log-serialize", help="Emit the relay logs as JSON.")
]

AppApmProviderOption = Annotated[
    APMProviders,
    typer.Option(case_sensitive=False, help="The APM provider used to trace the relay."),
]
