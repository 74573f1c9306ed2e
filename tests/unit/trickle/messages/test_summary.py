"""
Tests for end-of-run summaries.
"""
from unittest.mock import MagicMock

import pytest

from trickle.core.results import EntityResult, RunOutcome, RunResult
from trickle.messages.summary import Summary, format_duration


@pytest.mark.parametrize(
    "seconds, expected",
    [
        (1.0, "1.00 second"),
        (2.5, "2.50 seconds"),
        (61.0, "1 minute and 1.00 second"),
        (3725.0, "1 hour, 2 minutes and 5.00 seconds"),
    ],
)
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected


def logged(mock_method):
    return [call.args[0] for call in mock_method.call_args_list]


class TestSummary:
    def test_partial_failure(self):
        logger = MagicMock()
        result = RunResult(
            results=(
                EntityResult("a", True, row_count=1200, duration=1.0),
                EntityResult("b", False, error="execute query: locked"),
            ),
            total=4,
            duration=2.0,
            outcome=RunOutcome.PARTIAL_FAILURE,
        )

        Summary(logger).generate_summary(result)

        info = logged(logger.info)
        errors = logged(logger.error)
        assert "1 passed, 1 failed, 2 skipped (4 total)." in info
        assert "Total rows exported: 1,200" in info
        assert "Completed with errors" in errors
        assert "  b: execute query: locked" in errors

    def test_fatal(self):
        logger = MagicMock()

        Summary(logger).generate_summary(RunResult.fatal("state file not found"))

        assert any("state file not found" in line for line in logged(logger.error))
        assert not any("passed" in line for line in logged(logger.info))

    def test_warnings_and_verbose(self):
        logger = MagicMock()
        result = RunResult(
            results=(
                EntityResult(
                    "a", True, row_count=5, duration=0.5, warnings=("upload failed",)
                ),
            ),
            total=1,
            duration=0.5,
            outcome=RunOutcome.SUCCESS,
        )

        Summary(logger).generate_summary(result, verbose=True)

        assert "  a: upload failed" in logged(logger.warning)
        assert "  a: 5 rows (0.50s)" in logged(logger.info)
