"""Main entry point for the slotgate application.

Sets up the Typer CLI application, performs dependency injection (Composition
Root), defines CLI commands, and delegates execution to the CommandHandler.
Dependencies are built once per command invocation and passed by reference;
nothing is constructed at import time.
"""

import asyncio
import logging
from typing import Any, Coroutine, Dict, List, Optional

import typer
from typing_extensions import Annotated

# --- Core Layer ---
from slotgate.core.command_handler import CommandHandler
from slotgate.core.request_scheduler import RequestScheduler
from slotgate.core.services.reset_service import ResetService

# --- Domain Layer ---
from slotgate.domain.errors import ConfigurationError
from slotgate.domain.interfaces.transport import HttpTransport

# --- Infrastructure Layer ---
from slotgate.infrastructure.cli.display import ConsoleDisplay
from slotgate.infrastructure.config.settings import (
    get_api_token, get_base_url, get_buffer_ms, get_config, get_headroom_margin,
    get_request_concurrency_limit, get_strict_release, get_timeout_seconds,
    get_transaction_concurrency_limit, get_warn_remaining, load_configuration,
)
from slotgate.infrastructure.http.httpx_transport import HttpxTransport
from slotgate.infrastructure.monitoring.logger_setup import setup_logging
from slotgate.infrastructure.resilience.concurrency_pool import ConcurrencyPool
from slotgate.infrastructure.resilience.rate_limit_estimator import RateLimitEstimator
from slotgate.infrastructure.resilience.release_timer import AsyncioReleaseTimer

logger = logging.getLogger(__name__)


def build_transport(max_connections: int) -> HttpTransport:
    """Creates the upstream transport from configuration."""
    return HttpxTransport(
        base_url=get_base_url(),
        api_token=get_api_token(),
        timeout=get_timeout_seconds(),
        max_connections=max_connections,
    )


def create_dependencies(ui: Optional[ConsoleDisplay] = None) -> Dict[str, Any]:
    """Creates and wires up all dependencies for one command run.

    This acts as the Composition Root. Must be called from inside the
    event loop that will run the command (the release timer binds to it).
    """
    dependencies: Dict[str, Any] = {}
    dependencies['ui'] = ui or ConsoleDisplay()

    strict = get_strict_release()
    transaction_limit = get_transaction_concurrency_limit()
    request_pool = ConcurrencyPool(get_request_concurrency_limit(), strict=strict, name="requests")
    dependencies['request_pool'] = request_pool
    dependencies['estimator'] = RateLimitEstimator(
        pool_size=request_pool.size,
        headroom_margin=get_headroom_margin(),
        buffer_ms=get_buffer_ms(),
        warn_remaining=get_warn_remaining(),
    )
    dependencies['scheduler'] = RequestScheduler(
        transport=build_transport(request_pool.size),
        pool=request_pool,
        estimator=dependencies['estimator'],
        timer=AsyncioReleaseTimer(),
    )
    dependencies['transaction_pool'] = ConcurrencyPool(transaction_limit, strict=strict, name="transactions")
    dependencies['reset_service'] = ResetService(
        scheduler=dependencies['scheduler'],
        pool=dependencies['transaction_pool'],
        ui=dependencies['ui'],
    )
    dependencies['command_handler'] = CommandHandler(
        scheduler=dependencies['scheduler'],
        reset_service=dependencies['reset_service'],
        ui=dependencies['ui'],
    )
    logger.debug("All dependencies initialized successfully.")
    return dependencies


# --- Typer App Definition ---
app = typer.Typer(
    name="slotgate",
    help="slotgate: throttled access to a rate-limited upstream API, plus a tenant reset job.",
    add_completion=False,
)


def run_command(ui: ConsoleDisplay, build: Coroutine[Any, Any, Any]) -> Any:
    """Runs an async command on a fresh event loop, turning setup errors into exit code 1."""
    try:
        return asyncio.run(build)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        ui.display_error(f"Configuration error: {e}")
        raise typer.Exit(code=1)


async def _reset(ui: ConsoleDisplay) -> Any:
    handler: CommandHandler = create_dependencies(ui)['command_handler']
    return await handler.handle_reset()


async def _request(ui: ConsoleDisplay, verb: str, path: str, query: Optional[List[str]], body: Optional[str]) -> Any:
    handler: CommandHandler = create_dependencies(ui)['command_handler']
    return await handler.handle_request(verb, path, query, body)


@app.command()
def reset(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip the confirmation prompt.")] = False,
):
    """Delete all users, groups, clients, policies and IdPs from the tenant."""
    ui = ConsoleDisplay()
    if not yes and not ui.confirm("This deletes everything in the tenant. Continue?"):
        ui.display_info("Aborted.")
        raise typer.Exit(code=1)
    summary = run_command(ui, _reset(ui))
    if summary is None or summary.failed:
        raise typer.Exit(code=2)


@app.command()
def request(
    verb: Annotated[str, typer.Argument(help="GET, PUT, POST or DELETE.")],
    path: Annotated[str, typer.Argument(help="Path relative to the upstream base URL.")],
    query: Annotated[Optional[List[str]], typer.Option("--query", "-q", help="Query parameter as key=value; repeatable.")] = None,
    body: Annotated[Optional[str], typer.Option("--body", "-b", help="JSON request body.")] = None,
):
    """Send one throttled request and print the JSON response."""
    ui = ConsoleDisplay()
    if not run_command(ui, _request(ui, verb, path, query, body)):
        raise typer.Exit(code=2)


@app.callback()
def main_callback(
    log_level: Annotated[Optional[str], typer.Option("--log-level", "-l", help="Override the configured log level.")] = None,
):
    """Load configuration and logging before any command runs."""
    load_configuration()
    setup_logging(
        log_level=log_level or get_config('logging.level', 'INFO'),
        log_format=get_config('logging.format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s'),
        log_file=get_config('logging.file'),
    )


def cli_entry_point():
    """Function to be called by the script entry point in pyproject.toml."""
    app()


if __name__ == "__main__":
    cli_entry_point()
