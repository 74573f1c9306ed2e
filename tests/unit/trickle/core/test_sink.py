"""
Tests for CSV serialization through the local sink.
"""
import csv
from datetime import datetime
from decimal import Decimal

import pytest

from trickle.core.sink import Sink
from trickle.sinks.local import LocalSink
from trickle.utility.exceptions import SinkWriteError

START = datetime(2025, 1, 1)


def write_rows(sink, columns, rows):
    sink.write_headers(columns)
    for row in rows:
        buffer = sink.get_row_buffer()
        buffer[:] = row
        sink.write_buffered_row()


class TestLocalSink:
    """Test writing and finalizing local CSV files."""

    @pytest.mark.asyncio
    async def test_writes_final_file_on_close(self, export_dir):
        sink = LocalSink("crm.orders", START, str(export_dir))
        write_rows(sink, ["id", "name"], [(1, "alpha"), (2, None)])

        location = await sink.close()

        assert location == str(export_dir / "crm.orders__2025-01-01T00-00-00.csv")
        with open(location, "rb") as f:
            assert f.read() == b"id,name\n1,alpha\n2,\n"
        assert not sink.staging_path.exists()
        assert sink.row_count == 2
        assert sink.closed

    @pytest.mark.asyncio
    async def test_special_characters_round_trip(self, export_dir):
        values = ['has,comma', 'has "quote"', "has\nnewline", "plain"]
        sink = LocalSink("t", START, str(export_dir))
        write_rows(sink, ["a", "b", "c", "d"], [values])

        location = await sink.close()

        with open(location, newline="", encoding="utf-8") as f:
            rows = list(csv.reader(f))
        assert rows == [["a", "b", "c", "d"], values]
        with open(location, encoding="utf-8", newline="") as f:
            raw = f.read()
        assert '"has ""quote"""' in raw
        assert "\r" not in raw

    def test_staging_file_until_finalized(self, export_dir):
        sink = LocalSink("t", START, str(export_dir))
        write_rows(sink, ["a"], [("x",)])

        assert sink.staging_path.exists()
        assert sink.staging_path.name.endswith(".csv.part")
        assert not sink.final_path.exists()
        sink.discard()

    def test_remove_with_no_rows_leaves_nothing(self, export_dir):
        sink = LocalSink("t", START, str(export_dir))
        sink.write_headers(["a", "b"])

        assert sink.remove() is True
        assert list(export_dir.iterdir()) == []
        assert sink.closed

    def test_remove_with_rows_is_refused(self, export_dir):
        sink = LocalSink("t", START, str(export_dir))
        write_rows(sink, ["a"], [("x",)])

        assert sink.remove() is False
        assert sink.staging_path.exists()
        sink.discard()

    def test_discard_removes_partial_output(self, export_dir):
        sink = LocalSink("t", START, str(export_dir))
        write_rows(sink, ["a"], [("x",), ("y",)])

        sink.discard()

        assert list(export_dir.iterdir()) == []

    def test_flushes_every_n_rows(self, export_dir):
        sink = LocalSink("t", START, str(export_dir), flush_every=2)
        sink.write_headers(["a"])
        header_size = sink.staging_path.stat().st_size

        buffer = sink.get_row_buffer()
        buffer[:] = ("x",)
        sink.write_buffered_row()
        sink.write_buffered_row()

        assert sink.staging_path.stat().st_size > header_size
        sink.discard()

    def test_row_buffer_is_reused(self, export_dir):
        sink = LocalSink("t", START, str(export_dir))
        sink.write_headers(["a", "b"])

        assert sink.get_row_buffer() is sink.get_row_buffer()
        assert len(sink.get_row_buffer()) == 2
        sink.discard()

    def test_rows_before_headers_fail(self, export_dir):
        sink = LocalSink("t", START, str(export_dir))

        with pytest.raises(SinkWriteError):
            sink.get_row_buffer()
        sink.discard()

    @pytest.mark.asyncio
    async def test_write_after_close_fails(self, export_dir):
        sink = LocalSink("t", START, str(export_dir))
        write_rows(sink, ["a"], [("x",)])
        await sink.close()

        with pytest.raises(SinkWriteError, match="already closed"):
            sink.write_buffered_row()

    @pytest.mark.asyncio
    async def test_typed_values(self, export_dir):
        sink = LocalSink("t", START, str(export_dir))
        write_rows(
            sink,
            ["flag", "amount", "ratio", "raw"],
            [(True, Decimal("10.50"), 0.25, b"bytes")],
        )

        location = await sink.close()

        with open(location, encoding="utf-8") as f:
            assert f.read().splitlines()[1] == "1,10.50,0.25,bytes"


class TestSinkRegistry:
    def test_create_local(self, export_dir):
        sink = Sink.create("local", "t", START, str(export_dir))
        assert isinstance(sink, LocalSink)
        sink.discard()

    def test_unknown_type(self, export_dir):
        with pytest.raises(ValueError, match="Unknown sink type"):
            Sink.create("ftp", "t", START, str(export_dir))
