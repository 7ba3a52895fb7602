"""Command-line entry points for dropwatch.

Two independent commands share this module:

    dropwatch-monitor <METRIC_STATE> <TOKEN> <DROPLET_FILTER>
    dropwatch-scheduler <TOKEN> <DROPLET_FILTER>

Positional arguments are counted by hand so that a wrong count exits with
code 3 instead of Click's usage error, and arguments starting with "-" that
are not dropwatch options are kept as positionals.
"""

from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console

from dropwatch.api import DigitalOceanAPI
from dropwatch.config import Config, DropwatchConfig
from dropwatch.errors import DropwatchError, ExitCode, InvalidParametersNumberError, ProviderError
from dropwatch.filters import parse_droplet_filter, parse_metric_state
from dropwatch.monitor import Metric, MonitorRequest, run_monitor
from dropwatch.scheduler import SchedulerRequest, run_scheduler, summarize_failures

MONITOR_ARGS = 3
SCHEDULER_ARGS = 2
# Tokens that look like unknown options ("-abc", "--x") stay positional
PASSTHROUGH_CONTEXT = {"ignore_unknown_options": True}

monitor_app = typer.Typer(
    name="dropwatch-monitor",
    help="Report DigitalOcean droplet status and snapshot age metrics",
    add_completion=False,
)
scheduler_app = typer.Typer(
    name="dropwatch-scheduler",
    help="Shut down and snapshot DigitalOcean droplets",
    add_completion=False,
)

# stdout is reserved for metric lines and final messages
console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Print the version and exit."""
    if value:
        from dropwatch import __version__

        typer.echo(f"dropwatch version {__version__}")
        raise typer.Exit()


def fail(error: DropwatchError, exit_code: int | None = None) -> NoReturn:
    """Print an error message on stdout and exit with its code."""
    if error.message:
        typer.echo(error.message)
    raise typer.Exit(int(exit_code if exit_code is not None else error.exit_code))


def load_config(config_path: Path | None) -> DropwatchConfig:
    """
    Load configuration, falling back to defaults when no file exists.

    Raises:
        typer.Exit: If the config file is missing (when given) or invalid
    """
    config_manager = Config(config_path)
    try:
        config_manager.load()
    except Exception as e:
        console.print(f"[red]Error loading config: {e}[/red]")
        raise typer.Exit(int(ExitCode.GENERIC_ERROR))
    return config_manager.config


def create_api(token: str, config: DropwatchConfig) -> DigitalOceanAPI:
    """Create an API client from the token and connection settings."""
    return DigitalOceanAPI(
        token,
        api_base=config.digitalocean.api_base,
        timeout=config.digitalocean.timeout,
    )


@monitor_app.command(context_settings=PASSTHROUGH_CONTEXT)
def monitor(
    args: list[str] | None = typer.Argument(
        None,
        metavar="METRIC_STATE TOKEN DROPLET_FILTER",
        help='Metric toggles (e.g. "1,1"), API token, droplet names/IDs separated by ";"',
        show_default=False,
    ),
    config_path: Path | None = typer.Option(
        None, "--config", help="Path to config file (default ~/.config/dropwatch/config.yaml)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output on stderr"),
    version: bool = typer.Option(
        False, "--version", callback=version_callback, is_eager=True, help="Show version and exit"
    ),
):
    """
    Print droplet metrics as METRIC_ID|VALUE|DROPLET_NAME| lines.

    METRIC_STATE turns metrics on (1) or off (0): first Status, then
    snapshot age in hours. An empty DROPLET_FILTER selects every droplet.
    """
    args = args or []
    if len(args) != MONITOR_ARGS:
        fail(InvalidParametersNumberError())

    request = MonitorRequest(
        metric_state=parse_metric_state(args[0]),
        token=args[1],
        droplet_filter=parse_droplet_filter(args[2]),
    )

    config = load_config(config_path)
    api = create_api(request.token, config)

    def emit(metric: Metric) -> None:
        typer.echo(metric.format_line())

    try:
        run_monitor(api, request, emit, verbose=verbose)
    except DropwatchError as e:
        fail(e)


@scheduler_app.command(context_settings=PASSTHROUGH_CONTEXT)
def scheduler(
    args: list[str] | None = typer.Argument(
        None,
        metavar="TOKEN DROPLET_FILTER",
        help='API token, droplet names/IDs separated by ";"',
        show_default=False,
    ),
    config_path: Path | None = typer.Option(
        None, "--config", help="Path to config file (default ~/.config/dropwatch/config.yaml)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output on stderr"),
    version: bool = typer.Option(
        False, "--version", callback=version_callback, is_eager=True, help="Show version and exit"
    ),
):
    """
    Shut down every selected droplet and take a snapshot of it.

    Exits 0 when all snapshots complete. Otherwise prints the collected
    error messages and exits 1. An empty DROPLET_FILTER selects every
    droplet.
    """
    args = args or []
    if len(args) != SCHEDULER_ARGS:
        fail(InvalidParametersNumberError())

    request = SchedulerRequest(token=args[0], droplet_filter=parse_droplet_filter(args[1]))

    config = load_config(config_path)
    api = create_api(request.token, config)

    try:
        outcomes = run_scheduler(api, request, config.scheduler, verbose=verbose)
    except ProviderError as e:
        # No dedicated provider exit code for the scheduler
        fail(e, ExitCode.GENERIC_ERROR)
    except DropwatchError as e:
        fail(e)

    message = summarize_failures(outcomes, config.scheduler.error_message_limit)
    if message is not None:
        typer.echo(message)
        raise typer.Exit(int(ExitCode.GENERIC_ERROR))

    if verbose:
        console.print(f"[green]✓[/green] {len(outcomes)} snapshot(s) completed")


def monitor_main():
    """Entry point for dropwatch-monitor."""
    monitor_app()


def scheduler_main():
    """Entry point for dropwatch-scheduler."""
    scheduler_app()
