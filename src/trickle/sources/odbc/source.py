"""
ODBC row source.

Executes query templates through pyodbc. Templates use named bind
parameters (`:startDate`, `:tillDate`); ODBC only understands positional
`?` markers, so `bind_named_parameters` rewrites the query and builds the
positional argument list in order of appearance. Quoted literals, quoted
identifiers, comments and `::` casts are left alone, so a template such as

    WHERE updated_at >= TO_DATE(:startDate, 'YYYY-MM-DD"T"HH24:MI:SS')

binds exactly one parameter.

Every blocking driver call (execute, fetchone, close) runs in a worker
thread. The cursor fetches one row per `next()`, so memory use does not
grow with the result size.
"""
import asyncio
from typing import Any, Dict, List, Optional, Tuple

import pyodbc

from trickle.connections import OdbcConnection
from trickle.core.config import SourceConfig, TimeoutConfig
from trickle.core.source import RowCursor, RowSource
from trickle.messages import get_logger
from trickle.utility.exceptions import SourceReadError, TemplateError


def _is_name_start(char: str) -> bool:
    return char.isalpha() or char == "_"


def _is_name_char(char: str) -> bool:
    return char.isalnum() or char == "_"


def bind_named_parameters(query: str, params: Dict[str, Any]) -> Tuple[str, List[Any]]:
    """
    Rewrite `:name` placeholders as `?` and collect their values in order.

    A name used twice is bound twice.

    Raises:
        TemplateError: If the query references a name missing from `params`
    """
    output: List[str] = []
    args: List[Any] = []
    i = 0
    length = len(query)

    while i < length:
        char = query[i]

        # 'literal' and "identifier", doubled quotes escape
        if char in ("'", '"'):
            end = i + 1
            while end < length:
                if query[end] == char:
                    if end + 1 < length and query[end + 1] == char:
                        end += 2
                        continue
                    break
                end += 1
            output.append(query[i : end + 1])
            i = end + 1
            continue

        if query.startswith("--", i):
            end = query.find("\n", i)
            end = length if end == -1 else end
            output.append(query[i:end])
            i = end
            continue

        if query.startswith("/*", i):
            end = query.find("*/", i + 2)
            end = length if end == -1 else end + 2
            output.append(query[i:end])
            i = end
            continue

        if query.startswith("::", i):
            output.append("::")
            i += 2
            continue

        if char == ":" and i + 1 < length and _is_name_start(query[i + 1]):
            end = i + 1
            while end < length and _is_name_char(query[end]):
                end += 1
            name = query[i + 1 : end]
            if name not in params:
                raise TemplateError(
                    f"Unknown bind parameter ':{name}'", operation="bind parameters"
                )
            output.append("?")
            args.append(params[name])
            i = end
            continue

        output.append(char)
        i += 1

    return "".join(output), args


class OdbcRowCursor(RowCursor):
    """Forward-only cursor over a pyodbc result set."""

    def __init__(self, cursor: pyodbc.Cursor):
        self._cursor = cursor
        self._columns = [column[0] for column in cursor.description]
        self._row: Optional[pyodbc.Row] = None
        self._closed = False

    def column_names(self) -> List[str]:
        return list(self._columns)

    async def next(self) -> bool:
        try:
            self._row = await asyncio.to_thread(self._cursor.fetchone)
        except pyodbc.Error as e:
            self._row = None
            raise SourceReadError(str(e), operation="row iteration") from e
        return self._row is not None

    def scan(self, destinations: List[Any]) -> None:
        if self._row is None:
            raise SourceReadError("No current row", operation="scan row")
        if len(destinations) != len(self._row):
            raise SourceReadError(
                f"Expected {len(self._row)} destinations, got {len(destinations)}",
                operation="scan row",
            )
        destinations[:] = self._row

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await asyncio.to_thread(self._cursor.close)
        except pyodbc.Error as e:
            # Closing after a failed statement raises on some drivers
            get_logger("trickle.sources.odbc").debug(f"Error closing cursor: {e}")


class OdbcRowSource(RowSource, source_type="odbc"):
    """
    Relational source reached through ODBC.

    One connection is opened per run and shared by every entity; queries
    on it are bounded by the execution timeout.
    """

    def __init__(self, config: SourceConfig, timeouts: Optional[TimeoutConfig] = None):
        self.config = config
        self.timeouts = timeouts or TimeoutConfig()
        self.connection_factory = OdbcConnection(
            config, connect_timeout=self.timeouts.connect
        )
        self._conn: Optional[pyodbc.Connection] = None
        self.logger = get_logger("trickle.sources.odbc")

    async def connect(self) -> None:
        self._conn = await self.connection_factory.get_connection()
        # Per-statement query timeout enforced by the driver
        self._conn.timeout = self.timeouts.execution

    async def execute(self, query: str, params: Dict[str, str]) -> OdbcRowCursor:
        """
        Execute a query template with its named parameters.

        Raises:
            TemplateError: If the template references unknown parameters
            SourceReadError: If the statement fails or returns no result set
        """
        if self._conn is None:
            raise SourceReadError("Source is not connected", operation="execute query")

        sql, args = bind_named_parameters(query, params)
        self.logger.debug(f"Executing query with {len(args)} bound parameters")

        def run() -> pyodbc.Cursor:
            cursor = self._conn.cursor()
            try:
                cursor.execute(sql, *args)
            except pyodbc.Error:
                cursor.close()
                raise
            return cursor

        work = asyncio.ensure_future(asyncio.to_thread(run))
        try:
            cursor = await asyncio.shield(work)
        except asyncio.CancelledError:
            # The statement keeps running in its thread; close whatever it returns
            work.add_done_callback(self._close_orphaned)
            raise
        except pyodbc.Error as e:
            raise SourceReadError(str(e), operation="execute query") from e

        if cursor.description is None:
            await asyncio.to_thread(cursor.close)
            raise SourceReadError(
                "Statement did not return a result set", operation="execute query"
            )
        return OdbcRowCursor(cursor)

    def _close_orphaned(self, work: "asyncio.Future[pyodbc.Cursor]") -> None:
        if work.cancelled() or work.exception() is not None:
            return
        try:
            work.result().close()
        except pyodbc.Error as e:
            self.logger.debug(f"Error closing orphaned cursor: {e}")
        else:
            self.logger.debug("Closed cursor of a cancelled query")

    async def ping(self) -> None:
        cursor = await self.execute(self.config.ping_query, {})
        try:
            await cursor.next()
        finally:
            await cursor.close()

    async def close(self) -> None:
        if self._conn is not None:
            await self.connection_factory.close_connection(self._conn)
            self._conn = None
