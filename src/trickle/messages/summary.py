"""
End-of-run summaries for trickle exports.

Turns a RunResult into a short, readable block of log lines: how long the
run took, how many entities passed, failed or were skipped, how many rows
were exported, and which entities need attention.
"""
from typing import Optional

from trickle.core.results import RunOutcome, RunResult
from trickle.messages.logger import TrickleLogger


def format_duration(elapsed_time: float) -> str:
    """Render seconds as '1 hour, 2 minutes and 3.00 seconds'."""
    hours = int(elapsed_time // 3600)
    minutes = int((elapsed_time % 3600) // 60)
    seconds = elapsed_time % 60

    time_parts = []
    if hours > 0:
        time_parts.append(f"{hours} hour{'s' if hours != 1 else ''}")
    if minutes > 0:
        time_parts.append(f"{minutes} minute{'s' if minutes != 1 else ''}")
    time_parts.append(f"{seconds:.2f} second{'s' if seconds != 1.0 else ''}")

    if len(time_parts) > 1:
        return ", ".join(time_parts[:-1]) + f" and {time_parts[-1]}"
    return time_parts[0]


class Summary:
    """Logs the outcome of a run."""

    def __init__(self, logger: Optional[TrickleLogger] = None):
        self.logger = logger or TrickleLogger("trickle.summary")

    def generate_summary(self, result: RunResult, verbose: bool = False) -> None:
        """
        Log the summary for a finished run.

        Args:
            result: The run to summarise
            verbose: Also list every processed entity, not only failures
        """
        elapsed_time = result.duration
        total_rows = sum(r.row_count for r in result.results)

        self.logger.info("")

        if result.outcome is RunOutcome.FATAL:
            self.logger.error(
                f"Run failed before any entity was exported: {result.error}"
            )
            self.logger.info("")
            return

        entity_word = "entity" if result.total == 1 else "entities"
        self.logger.info(
            f"Finished exporting {result.total} {entity_word} "
            f"in {format_duration(elapsed_time)} ({elapsed_time:.2f}s)."
        )

        if result.outcome is RunOutcome.SUCCESS:
            self.logger.info("Completed successfully", color_prefix="OK")
        else:
            self.logger.error("Completed with errors")

        parts = [f"{result.success} passed"]
        if result.failed > 0:
            parts.append(f"{result.failed} failed")
        if result.skipped > 0:
            parts.append(f"{result.skipped} skipped")
        self.logger.info(f"{', '.join(parts)} ({result.total} total).")

        if total_rows > 0:
            self.logger.info(f"Total rows exported: {total_rows:,}")
            if elapsed_time > 0:
                rate = total_rows / elapsed_time
                self.logger.info(f"Overall rate: {rate:,.0f} rows/s")

        warned = [r for r in result.results if r.warnings]
        for entity_result in warned:
            for warning in entity_result.warnings:
                self.logger.warning(f"  {entity_result.entity}: {warning}")

        if verbose:
            for entity_result in result.results:
                if entity_result.success:
                    self.logger.info(
                        f"  {entity_result.entity}: {entity_result.row_count:,} rows "
                        f"({entity_result.duration:.2f}s)"
                    )

        self.logger.info("")

        if result.failed > 0:
            self.logger.error("Failed entities:")
            for entity_result in result.results:
                if not entity_result.success:
                    self.logger.error(
                        f"  {entity_result.entity}: {entity_result.error}"
                    )
