import platform

import rich
import typer

from fastrelay.__about__ import __version__
from fastrelay.cli.options import (
    AppApmProviderOption,
    AppArgument,
    AppHostOption,
    AppHotReloadOption,
    AppLogLevelOption,
    AppLogSerializeOption,
    AppPortOption,
    AppServerLogLevelOption,
    AppVersionOption,
    CLIContext,
)
from fastrelay.cli.runner import AppConfiguration, ApplicationRunner, ServerConfiguration
from fastrelay.cli.utils import APMProviders, LogLevels, ensure_pubsub_credentials, get_log_level

DEFAULT_APP = "fastrelay.main:app"

app = typer.Typer(
    name="fastrelay",
    help="A CLI to run FastRelay applications.",
    pretty_exceptions_short=True,
    invoke_without_command=True,
    rich_markup_mode="markdown",
)


@app.callback()
def main(
    ctx: CLIContext,
    version: AppVersionOption = False,
) -> None:
    """
    Display helpful tips when the main command is run without any subcommands.
    """
    if version:
        typer.echo(
            f"Running FastRelay {__version__} with {platform.python_implementation()} "
            f"{platform.python_version()} on {platform.system()}",
        )
        raise typer.Exit

    if ctx.invoked_subcommand is None:
        rich.print("\n[bold]Welcome to the FastRelay CLI![/bold]")
        rich.print("\n[dim]Relays Pub/Sub messages to an HTTP sink with bounded retries.[/dim]")
        rich.print("\n[bold]Usage[/bold]: [cyan]fastrelay [COMMAND] [ARGS]...[/cyan]")
        rich.print("\n[bold]Common Commands:[/bold]")
        rich.print("  [green]run[/green]    Run a FastRelay application.")
        rich.print("  [green]help[/green]   Get detailed help for a command.")
        rich.print(
            "\nRun '[cyan]fastrelay --help[/cyan]' for "
            "a list of all available commands and options."
        )


@app.command()
def run(
    app: AppArgument = DEFAULT_APP,
    host: AppHostOption = "0.0.0.0",
    port: AppPortOption = 8000,
    reload: AppHotReloadOption = False,
    log_level: AppLogLevelOption = LogLevels.INFO,
    log_serialize: AppLogSerializeOption = False,
    server_log_level: AppServerLogLevelOption = LogLevels.WARNING,
    apm_provider: AppApmProviderOption = APMProviders.NOOP,
) -> None:
    """
    Run a FastRelay application with uvicorn.
    """
    ensure_pubsub_credentials()
    app_configuration = AppConfiguration(
        app=app,
        log_level=get_log_level(log_level),
        log_serialize=log_serialize,
        apm_provider=apm_provider.value,
    )
    server_configuration = ServerConfiguration(
        host=host,
        port=port,
        reload=reload,
        log_level=get_log_level(server_log_level),
    )

    application_runner = ApplicationRunner()
    application_runner.run(app_configuration, server_configuration)


@app.command(name="help")
def show_help(ctx: typer.Context) -> None:
    """
    Show this message and exit.
    """
    if ctx.parent:
        rich.print(ctx.parent.get_help())


def execute_app() -> None:
    app()


if __name__ == "__main__":
    execute_app()
