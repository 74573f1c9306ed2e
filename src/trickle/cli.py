#!/usr/bin/env python3
"""
trickle CLI - incremental CSV exports from relational sources.

Exit codes:
    0  every active entity exported
    1  fatal error before any entity ran (configuration, state, connection)
    2  one or more entities failed
"""

import asyncio
import signal
import sys
from typing import Any, Dict, Optional

import click

from trickle.core.config import ExportConfig, FailurePolicy
from trickle.core.export import run_export, validate_setup
from trickle.core.results import RunResult
from trickle.core.workspace import Workspace
from trickle.messages import TrickleLogger, get_logger
from trickle.messages.summary import Summary
from trickle.utility.exceptions import ConfigError, TrickleError


def _config_options(func):
    """Options shared by every command that loads configuration."""
    options = [
        click.option(
            "--config",
            "-c",
            "config_file",
            type=click.Path(dir_okay=False),
            help="Path to trickle.yml (default: search upwards from here)",
        ),
        click.option("--state-file", help="Watermark state file"),
        click.option("--sql-dir", help="Directory of <entity>.sql query templates"),
        click.option("--export-dir", help="Directory for CSV output"),
        click.option(
            "--days-back",
            type=int,
            help="Lookback for entities never synced before (default: 30)",
        ),
        click.option(
            "--connect-timeout", type=int, help="Connect timeout in seconds"
        ),
        click.option(
            "--query-timeout",
            type=int,
            help="Execution timeout for the whole run in seconds",
        ),
        click.option("--verbose", "-v", is_flag=True, help="Debug logging"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _load_config(
    config_file: Optional[str], overrides: Dict[str, Any]
) -> ExportConfig:
    workspace = Workspace.discover(config_file)
    return workspace.prepare(overrides)


def _base_overrides(**kwargs) -> Dict[str, Any]:
    return {
        "state_file": kwargs.get("state_file"),
        "sql_dir": kwargs.get("sql_dir"),
        "export_dir": kwargs.get("export_dir"),
        "default_lookback_days": kwargs.get("days_back"),
        "timeouts.connect": kwargs.get("connect_timeout"),
        "timeouts.execution": kwargs.get("query_timeout"),
        "verbose": True if kwargs.get("verbose") else None,
    }


async def _export_with_signals(config: ExportConfig) -> RunResult:
    """Run the export, turning SIGINT/SIGTERM into cooperative cancellation."""
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    logger = get_logger("trickle.cli")

    def request_cancel():
        if not cancel_event.is_set():
            logger.warning("Received interrupt signal, stopping after cleanup...")
            cancel_event.set()

    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, request_cancel)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform or outside the main thread
            pass

    try:
        return await run_export(config, cancel_event=cancel_event)
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


@click.group()
@click.version_option(package_name="trickle")
def trickle():
    """
    trickle - incremental CSV exports driven by per-entity watermarks.
    """
    pass


@trickle.command()
@_config_options
@click.option(
    "--continue-on-error",
    is_flag=True,
    help="Keep exporting after an entity fails instead of stopping",
)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Validate configuration, state and templates without exporting",
)
def export(config_file, continue_on_error, dry_run, **kwargs):
    """Export changed rows for every active entity."""
    overrides = _base_overrides(**kwargs)
    if continue_on_error:
        overrides["failure_policy"] = FailurePolicy.CONTINUE_AND_REPORT_ALL.value
    if dry_run:
        overrides["dry_run"] = True

    try:
        config = _load_config(config_file, overrides)
    except ConfigError as e:
        click.echo(f"Configuration error: {e}")
        sys.exit(1)

    TrickleLogger.set_verbose(config.verbose)

    if config.dry_run:
        try:
            asyncio.run(validate_setup(config))
        except TrickleError as e:
            click.echo(f"Validation failed: {e}")
            sys.exit(1)
        click.echo("Dry run: configuration, state and templates are valid")
        return

    result = asyncio.run(_export_with_signals(config))
    Summary().generate_summary(result, verbose=config.verbose)

    if result.outcome.exit_code:
        sys.exit(result.outcome.exit_code)


@trickle.command()
@_config_options
@click.option(
    "--test-connection",
    is_flag=True,
    help="Also connect to the source and run a test query",
)
def validate(config_file, test_connection, **kwargs):
    """Validate configuration, state file and query templates."""
    try:
        config = _load_config(config_file, _base_overrides(**kwargs))
        TrickleLogger.set_verbose(config.verbose)
        store = asyncio.run(validate_setup(config, test_connection=test_connection))
    except ConfigError as e:
        click.echo(f"Configuration error: {e}")
        sys.exit(1)
    except TrickleError as e:
        click.echo(f"Validation failed: {e}")
        sys.exit(1)

    click.echo("Configuration: OK")
    click.echo(
        f"State file: OK ({store.total_count} entities, {store.active_count} active)"
    )
    click.echo("Query templates: OK")
    if test_connection:
        click.echo("Source connection: OK")


if __name__ == "__main__":
    trickle()
