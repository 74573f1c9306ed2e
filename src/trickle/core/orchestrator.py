"""
Orchestrator drives one incremental export run.

Run state machine:

    NOT_STARTED -> WINDOW_CAPTURED -> (per entity:
        PENDING -> EXECUTING -> WRITING -> COMMITTING -> DONE | FAILED
    ) -> COMPLETED

1. One window end is captured (UTC, whole seconds) before any entity is
   touched, so every entity in the run shares the same upper bound.
2. Active entities are processed one at a time, in name order:
   the window start is the entity's last sync time (or end minus the
   lookback), its query template is loaded and executed with
   `startDate`/`tillDate`, every row is streamed through a sink, and only
   after the sink finished is the watermark moved to the window end.
3. Results are aggregated into a frozen RunResult.

A failed entity never advances its watermark. Under
STOP_ON_FIRST_FAILURE (the default) the run ends at the first failure,
so later entities keep their watermarks too; CONTINUE_AND_REPORT_ALL
keeps going and reports every failure. Cancellation and the execution
deadline always end the run.

The execution deadline covers query execution, streaming and closing the
output of every entity. Watermark commits are outside it, so an entity
whose output is final is never reported as timed out.

Cancellation is cooperative: set `cancel_event` and the current entity
fails with RunCancelledError at its next suspension point (query
execution, the next row, or just before the watermark commit). Cancelling
the task itself also works; the sink and cursor are cleaned up before
CancelledError propagates.
"""
import asyncio
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Set, Tuple, TypeVar

from trickle.core.config import FailurePolicy
from trickle.core.results import EntityResult, RunOutcome, RunResult
from trickle.core.sink import Sink
from trickle.core.source import RowCursor, RowSource
from trickle.core.templates import TemplateLoader
from trickle.core.watermark import EntityWatermark, WatermarkStore
from trickle.core.window import RunWindow, format_timestamp, utc_now
from trickle.messages import TrickleLogger, get_logger
from trickle.utility.exceptions import RunCancelledError, SinkUploadError
from trickle.utility.run_id import generate_run_id

T = TypeVar("T")

SinkFactory = Callable[[str, datetime], Sink]


class RunPhase(str, Enum):
    NOT_STARTED = "not_started"
    WINDOW_CAPTURED = "window_captured"
    COMPLETED = "completed"


class EntityPhase(str, Enum):
    PENDING = "pending"
    EXECUTING = "executing"
    WRITING = "writing"
    COMMITTING = "committing"
    DONE = "done"
    FAILED = "failed"


class Orchestrator:
    """
    Runs every active entity through source, sink and watermark commit.

    Args:
        store: Loaded watermark state
        source: Connected row source
        templates: Query template lookup
        sink_factory: Builds the sink for (entity name, window start)
        lookback_days: Window length for entities never synced before
        failure_policy: What to do after an entity fails
        execution_timeout: Seconds the whole streaming phase may take
        cancel_event: Set it to cancel the run cooperatively
        clock: Returns the window end; defaults to UTC now
        run_name: Mixed into the run ID
    """

    def __init__(
        self,
        store: WatermarkStore,
        source: RowSource,
        templates: TemplateLoader,
        sink_factory: SinkFactory,
        lookback_days: int = 30,
        failure_policy: FailurePolicy = FailurePolicy.STOP_ON_FIRST_FAILURE,
        execution_timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
        clock: Callable[[], datetime] = utc_now,
        run_name: str = "trickle",
    ):
        self.store = store
        self.source = source
        self.templates = templates
        self.sink_factory = sink_factory
        self.lookback_days = lookback_days
        self.failure_policy = failure_policy
        self.execution_timeout = execution_timeout
        self.cancel_event = cancel_event
        self.clock = clock
        self.run_name = run_name

        self.phase = RunPhase.NOT_STARTED
        self.entity_phases: Dict[str, EntityPhase] = {}
        self._cleanup_tasks: Set["asyncio.Task[None]"] = set()
        self.logger = get_logger("trickle.orchestrator")

    async def run(self) -> RunResult:
        """Export every active entity once and return the aggregate result."""
        loop = asyncio.get_running_loop()
        started = loop.time()

        end = self.clock().replace(microsecond=0)
        self.phase = RunPhase.WINDOW_CAPTURED
        run_id = generate_run_id([self.run_name, format_timestamp(end)])

        total = self.store.total_count
        active = self.store.get_active()
        self.logger.start(
            f"Run {run_id[:8]}: {len(active)} of {total} entities active, "
            f"window end {format_timestamp(end)}"
        )

        deadline = (
            started + self.execution_timeout if self.execution_timeout else None
        )
        results: List[EntityResult] = []

        for entity in active:
            result, timed_out = await self._process_entity(entity, end, deadline)
            results.append(result)

            if not result.success and self._should_stop(timed_out):
                break

        self.phase = RunPhase.COMPLETED
        failed = any(not r.success for r in results)
        return RunResult(
            results=tuple(results),
            total=total,
            duration=loop.time() - started,
            outcome=RunOutcome.PARTIAL_FAILURE if failed else RunOutcome.SUCCESS,
            run_id=run_id,
            end=end,
        )

    async def _process_entity(
        self, entity: EntityWatermark, end: datetime, deadline: Optional[float]
    ) -> Tuple[EntityResult, bool]:
        """
        Export one entity and commit its watermark.

        The deadline bounds query execution, streaming and closing the
        output. The watermark commit runs outside it: once the output is
        final, the commit (and its best-effort mirror push) always gets to
        finish, so the result never contradicts the state file.

        Returns:
            The entity result, and whether the run deadline expired
        """
        name = entity.name
        logger = self._entity_logger(name)
        loop = asyncio.get_running_loop()
        started = loop.time()
        window = RunWindow.for_entity(entity.last_sync_time, end, self.lookback_days)

        cursor: Optional[RowCursor] = None
        sink: Optional[Sink] = None
        row_count = 0
        output_location: Optional[str] = None
        warnings: List[str] = []
        deadline_scope = asyncio.timeout_at(deadline)
        self.entity_phases[name] = EntityPhase.PENDING

        try:
            self._check_cancelled("start entity")
            query = self.templates.load(name)

            async with deadline_scope:
                self.entity_phases[name] = EntityPhase.EXECUTING
                logger.start(
                    f"Exporting {format_timestamp(window.start)} .. "
                    f"{format_timestamp(window.end)}"
                )
                cursor = await self._race_cancel(
                    self.source.execute(query, window.as_params()), "execute query"
                )

                self.entity_phases[name] = EntityPhase.WRITING
                sink = self.sink_factory(name, window.start)
                row_count = await self._stream(cursor, sink)
                await cursor.close()
                cursor = None

                if row_count == 0:
                    sink.remove()
                    logger.debug("No changed rows, nothing written")
                else:
                    output_location = await self._close_sink(sink, warnings, logger)

            # A cancel that arrived while the output was being closed still
            # keeps the watermark where it was
            self._check_cancelled("close output")

            self.entity_phases[name] = EntityPhase.COMMITTING
            await self.store.update_timestamp(name, end)

        except Exception as e:
            timed_out = isinstance(e, TimeoutError) and deadline_scope.expired()
            if timed_out:
                error = f"execution timeout: run exceeded {self.execution_timeout}s"
            else:
                error = str(e)
            self.entity_phases[name] = EntityPhase.FAILED
            logger.error(f"Failed: {error}")
            result = EntityResult(
                entity=name,
                success=False,
                row_count=sink.row_count if sink is not None else row_count,
                error=error,
                duration=loop.time() - started,
            )
            return result, timed_out
        finally:
            if cursor is not None:
                await cursor.close()
            if sink is not None and not sink.closed:
                sink.discard()

        self.entity_phases[name] = EntityPhase.DONE
        duration = loop.time() - started
        rate = row_count / duration if duration > 0 else 0
        logger.success(TrickleLogger.EXPORT_TEMPLATE.format(row_count, duration, rate))
        result = EntityResult(
            entity=name,
            success=True,
            row_count=row_count,
            output_location=output_location,
            duration=duration,
            warnings=tuple(warnings),
        )
        return result, False

    async def _close_sink(
        self, sink: Sink, warnings: List[str], logger: TrickleLogger
    ) -> str:
        try:
            return await sink.close()
        except SinkUploadError as e:
            if not e.local_path:
                raise
            # Local copy is a recoverable fallback, not a failure
            warnings.append(str(e))
            logger.warning(str(e))
            return e.local_path

    async def _stream(self, cursor: RowCursor, sink: Sink) -> int:
        sink.write_headers(cursor.column_names())
        row = sink.get_row_buffer()
        while await cursor.next():
            self._check_cancelled("stream rows")
            cursor.scan(row)
            sink.write_buffered_row()
        return sink.row_count

    async def _race_cancel(self, awaitable: Awaitable[T], operation: str) -> T:
        """Await `awaitable`, giving up as soon as the cancel event is set."""
        if self.cancel_event is None:
            return await awaitable

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self.cancel_event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            finished = task.done()
            if not finished:
                task.cancel()
                task.add_done_callback(self._release_abandoned)

        if not finished:
            raise RunCancelledError("Run cancelled", operation=operation)
        return task.result()

    def _release_abandoned(self, task: "asyncio.Future[object]") -> None:
        # Nobody awaits an abandoned task; a cursor it still produced is closed
        if task.cancelled() or task.exception() is not None:
            return
        result = task.result()
        if isinstance(result, RowCursor):
            cleanup = asyncio.ensure_future(self._close_abandoned(result))
            self._cleanup_tasks.add(cleanup)
            cleanup.add_done_callback(self._cleanup_tasks.discard)

    async def _close_abandoned(self, cursor: RowCursor) -> None:
        try:
            await cursor.close()
        except Exception as e:
            self.logger.warning(f"Could not close abandoned cursor: {e}")

    def _check_cancelled(self, operation: str) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise RunCancelledError("Run cancelled", operation=operation)

    def _should_stop(self, timed_out: bool) -> bool:
        if timed_out:
            return True
        if self.cancel_event is not None and self.cancel_event.is_set():
            return True
        return self.failure_policy is FailurePolicy.STOP_ON_FIRST_FAILURE

    def _entity_logger(self, name: str) -> TrickleLogger:
        return get_logger(f"trickle.entity.{name}")
