"""
Common test fixtures and configuration.

Provides temporary directories, a state-file writer and an in-memory row
source that filters rows by the `startDate`/`tillDate` window, so the
export loop can be tested end to end without a database.
"""
import json
import shutil
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pytest
from click.testing import CliRunner

# Add src directory to Python path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from trickle.core.source import RowCursor, RowSource  # noqa: E402
from trickle.utility.exceptions import SourceReadError  # noqa: E402

QUERY_TEMPLATE = (
    "SELECT * FROM {table}\n"
    "WHERE updated_at >= :startDate AND updated_at < :tillDate\n"
    "ORDER BY updated_at"
)


class FakeCursor(RowCursor):
    """Cursor over an in-memory list of rows."""

    def __init__(
        self,
        columns: Sequence[str],
        rows: Sequence[tuple],
        fail_at_row: Optional[int] = None,
        on_row=None,
    ):
        self._columns = list(columns)
        self._rows = list(rows)
        self._index = -1
        self._fail_at_row = fail_at_row
        self._on_row = on_row
        self.closed = False

    def column_names(self) -> List[str]:
        return list(self._columns)

    async def next(self) -> bool:
        self._index += 1
        if self._fail_at_row is not None and self._index == self._fail_at_row:
            raise SourceReadError("connection reset", operation="row iteration")
        if self._on_row is not None:
            self._on_row(self._index)
        return self._index < len(self._rows)

    def scan(self, destinations: List[Any]) -> None:
        destinations[:] = self._rows[self._index]

    async def close(self) -> None:
        self.closed = True


class FakeRowSource(RowSource):
    """
    In-memory source keyed by table name.

    Every table's last column is its `updated_at` timestamp string; rows are
    returned when startDate <= updated_at < tillDate.
    """

    def __init__(
        self,
        tables: Dict[str, Tuple[Sequence[str], Sequence[tuple]]],
        fail_tables: Sequence[str] = (),
        fail_at_row: Optional[Dict[str, int]] = None,
    ):
        self.tables = tables
        self.fail_tables = set(fail_tables)
        self.fail_at_row = fail_at_row or {}
        self.executed: List[Tuple[str, Dict[str, str]]] = []
        self.cursors: List[FakeCursor] = []
        self.connected = False
        self.pinged = False
        self.closed = False
        self.on_row = None

    async def connect(self) -> None:
        self.connected = True

    async def execute(self, query: str, params: Dict[str, str]) -> RowCursor:
        table = query.split("FROM", 1)[1].split()[0]
        self.executed.append((table, dict(params)))
        if table in self.fail_tables:
            raise SourceReadError(f"table {table} is locked", operation="execute query")

        columns, rows = self.tables[table]
        selected = [
            row
            for row in rows
            if params["startDate"] <= row[-1] < params["tillDate"]
        ]
        cursor = FakeCursor(
            columns, selected, self.fail_at_row.get(table), on_row=self.on_row
        )
        self.cursors.append(cursor)
        return cursor

    async def ping(self) -> None:
        self.pinged = True

    async def close(self) -> None:
        self.closed = True

    def executed_tables(self) -> List[str]:
        return [table for table, _ in self.executed]


def write_state(path: Path, entries: List[Dict[str, Any]]) -> Path:
    """Write a state file in the on-disk format."""
    path.write_text(json.dumps(entries, indent=2), encoding="utf-8")
    return path


def read_state(path: Path) -> List[Dict[str, Any]]:
    return json.loads(path.read_text(encoding="utf-8"))


def write_templates(sql_dir: Path, *entities: str) -> Path:
    sql_dir.mkdir(parents=True, exist_ok=True)
    for entity in entities:
        (sql_dir / f"{entity}.sql").write_text(
            QUERY_TEMPLATE.format(table=entity), encoding="utf-8"
        )
    return sql_dir


@pytest.fixture
def cli_runner():
    """Create Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests."""
    temp_dir = tempfile.mkdtemp()
    yield Path(temp_dir)
    shutil.rmtree(temp_dir)


@pytest.fixture
def state_path(temp_dir):
    return temp_dir / "state.json"


@pytest.fixture
def sql_dir(temp_dir):
    path = temp_dir / "sql"
    path.mkdir()
    return path


@pytest.fixture
def export_dir(temp_dir):
    path = temp_dir / "export"
    path.mkdir()
    return path
