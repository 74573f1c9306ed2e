"""
Result types produced by an export run.

EntityResult and RunResult are frozen dataclasses: the orchestrator builds
each one exactly once and nothing downstream can change it afterwards.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple


class RunOutcome(str, Enum):
    """Three-way outcome of a run, independent of the logs."""

    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    FATAL = "fatal"

    @property
    def exit_code(self) -> int:
        return {
            RunOutcome.SUCCESS: 0,
            RunOutcome.PARTIAL_FAILURE: 2,
            RunOutcome.FATAL: 1,
        }[self]


@dataclass(frozen=True)
class EntityResult:
    """Outcome of exporting one entity."""

    entity: str
    success: bool
    row_count: int = 0
    output_location: Optional[str] = None
    error: Optional[str] = None
    duration: float = 0.0
    warnings: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RunResult:
    """
    Aggregate outcome of one run.

    `skipped` counts every entity in the state that was not processed:
    inactive entities plus active ones never reached after a stop.
    """

    results: Tuple[EntityResult, ...]
    total: int
    duration: float
    outcome: RunOutcome
    run_id: Optional[str] = None
    end: Optional[datetime] = None
    error: Optional[str] = None
    processed: int = field(init=False)
    success: int = field(init=False)
    failed: int = field(init=False)
    skipped: int = field(init=False)

    def __post_init__(self):
        processed = len(self.results)
        succeeded = sum(1 for r in self.results if r.success)
        object.__setattr__(self, "processed", processed)
        object.__setattr__(self, "success", succeeded)
        object.__setattr__(self, "failed", processed - succeeded)
        object.__setattr__(self, "skipped", self.total - processed)

    @classmethod
    def fatal(
        cls,
        error: str,
        total: int = 0,
        duration: float = 0.0,
        run_id: Optional[str] = None,
    ) -> "RunResult":
        """A run that failed during setup, before any entity ran."""
        return cls(
            results=(),
            total=total,
            duration=duration,
            outcome=RunOutcome.FATAL,
            run_id=run_id,
            error=error,
        )

    @property
    def failed_entities(self) -> Tuple[EntityResult, ...]:
        return tuple(r for r in self.results if not r.success)
