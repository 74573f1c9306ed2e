"""
Run setup, validation and the export entry point.

`run_export` wires configuration into an Orchestrator: it creates the
export directory, builds the remote client when one is configured, loads
the watermark state, connects the source and then hands over. Anything
that fails before the first entity runs is a fatal setup error and comes
back as a RunResult with outcome FATAL rather than an exception, so every
caller gets the three-way outcome from the result object alone.
"""
import asyncio
from datetime import datetime
from typing import Callable, Optional

import trickle.sinks  # noqa: F401  registers sink types
import trickle.sources  # noqa: F401  registers source types
from trickle.core.config import ExportConfig
from trickle.core.orchestrator import Orchestrator, SinkFactory
from trickle.core.results import RunResult
from trickle.core.sink import Sink
from trickle.core.source import RowSource
from trickle.core.templates import TemplateLoader
from trickle.core.watermark import WatermarkStore
from trickle.core.window import utc_now
from trickle.messages import get_logger
from trickle.messages.logger import _get_event_loop_time
from trickle.utility.azure_adls import ADLSOperations
from trickle.utility.exceptions import ConfigError, TrickleError


def build_sink_factory(
    config: ExportConfig, operations: Optional[ADLSOperations] = None
) -> SinkFactory:
    """Sink factory for the destination the configuration selects."""

    def create(entity_name: str, window_start: datetime) -> Sink:
        kwargs = {"flush_every": config.flush_every}
        if config.sink_type == "adls":
            kwargs["operations"] = operations
            kwargs["prefix"] = config.remote.prefix
        return Sink.create(
            config.sink_type, entity_name, window_start, config.export_dir, **kwargs
        )

    return create


def build_operations(config: ExportConfig) -> Optional[ADLSOperations]:
    """ADLS client for the configured remote, or None for local-only runs."""
    if config.remote is None:
        return None
    return ADLSOperations.from_config(config.remote)


async def load_state(
    config: ExportConfig, operations: Optional[ADLSOperations] = None
) -> WatermarkStore:
    mirror_key = config.remote.state_key if config.remote is not None else None
    return await WatermarkStore.load(
        config.state_file, mirror=operations, mirror_key=mirror_key
    )


async def validate_setup(
    config: ExportConfig,
    test_connection: bool = False,
    operations: Optional[ADLSOperations] = None,
    source: Optional[RowSource] = None,
) -> WatermarkStore:
    """
    Check that a run could start: state loads, every active entity has a
    template and, optionally, the source answers.

    Raises:
        TrickleError: The first problem found
    """
    logger = get_logger("trickle.validate")

    if operations is None:
        operations = build_operations(config)
    store = await load_state(config, operations)
    logger.info(
        f"State file: {config.state_file} "
        f"({store.total_count} entities, {store.active_count} active)"
    )

    store.validate_templates(TemplateLoader(config.sql_dir))
    logger.info(f"Query templates: all active entities covered in {config.sql_dir}")

    if test_connection:
        if source is None:
            source = _create_source(config)
        await source.connect()
        try:
            await source.ping()
        finally:
            await source.close()
        logger.info("Source connection: OK")

    return store


async def run_export(
    config: ExportConfig,
    cancel_event: Optional[asyncio.Event] = None,
    source: Optional[RowSource] = None,
    operations: Optional[ADLSOperations] = None,
    clock: Callable[[], datetime] = utc_now,
) -> RunResult:
    """
    Run one export with the given configuration.

    Args:
        config: Validated configuration
        cancel_event: Set to cancel the run cooperatively
        source: Row source to use instead of the configured one
        operations: ADLS client to use instead of building one
        clock: Window end provider

    Returns:
        RunResult; outcome FATAL when setup failed
    """
    logger = get_logger("trickle.export")
    started = _get_event_loop_time()
    store: Optional[WatermarkStore] = None

    try:
        try:
            config.ensure_dirs()
        except OSError as e:
            raise ConfigError(f"Cannot create output directories: {e}") from e

        if operations is None:
            operations = build_operations(config)
        store = await load_state(config, operations)
        logger.info(
            f"Loaded state {config.state_file} "
            f"({store.total_count} entities, {store.active_count} active)"
        )

        if source is None:
            source = _create_source(config)
        await source.connect()
    except TrickleError as e:
        logger.error(f"Setup failed: {e}")
        return RunResult.fatal(
            str(e),
            total=store.total_count if store is not None else 0,
            duration=_get_event_loop_time() - started,
        )

    try:
        orchestrator = Orchestrator(
            store=store,
            source=source,
            templates=TemplateLoader(config.sql_dir),
            sink_factory=build_sink_factory(config, operations),
            lookback_days=config.default_lookback_days,
            failure_policy=config.failure_policy,
            execution_timeout=config.timeouts.execution,
            cancel_event=cancel_event,
            clock=clock,
            run_name=config.name,
        )
        return await orchestrator.run()
    finally:
        await source.close()


def _create_source(config: ExportConfig) -> RowSource:
    if config.source is None:
        raise ConfigError("No source configured")
    return RowSource.create(config.source, timeouts=config.timeouts)
