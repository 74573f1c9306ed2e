"""
Row source contract.

A RowSource executes a parameterized query and hands back a RowCursor, a
forward-only, single-pass cursor that holds at most one row at a time:

    cursor = await source.execute(query, {"startDate": ..., "tillDate": ...})
    try:
        columns = cursor.column_names()
        row = [None] * len(columns)
        while await cursor.next():
            cursor.scan(row)
            ...
    finally:
        await cursor.close()

Errors while advancing the cursor surface from `next()` as SourceReadError
with operation "row iteration"; errors copying the current row surface
from `scan()` with operation "scan row".

Example:
    ```python
    class MySource(RowSource, source_type="my_type"):
        async def execute(self, query, params) -> RowCursor:
            ...
    ```
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Type

from trickle.utility.exceptions import ConfigError


class RowCursor(ABC):
    """Forward-only cursor over a query result."""

    @abstractmethod
    def column_names(self) -> List[str]:
        pass

    @abstractmethod
    async def next(self) -> bool:
        """Advance to the next row. Returns False once the result is exhausted."""
        pass

    @abstractmethod
    def scan(self, destinations: List[Any]) -> None:
        """Copy the current row into `destinations` in place."""
        pass

    @abstractmethod
    async def close(self) -> None:
        pass


class RowSource(ABC):
    """Base class for relational sources."""

    _registry: Dict[str, Type["RowSource"]] = {}

    def __init_subclass__(cls, source_type: Optional[str] = None):
        super().__init_subclass__()
        if source_type:
            cls._registry[source_type] = cls

    @classmethod
    def create(cls, config: Any, **kwargs) -> "RowSource":
        """
        Create a RowSource for `config.type` using the registry.

        Raises:
            ConfigError: If the source type is not registered
        """
        source_type = config.type
        if source_type not in cls._registry:
            registered = ", ".join(sorted(cls._registry)) or "none"
            raise ConfigError(
                f"Unknown source type: {source_type} (registered: {registered})"
            )
        return cls._registry[source_type](config, **kwargs)

    @abstractmethod
    async def connect(self) -> None:
        """Open the underlying session. Bounded by the connect timeout."""
        pass

    @abstractmethod
    async def execute(self, query: str, params: Dict[str, str]) -> RowCursor:
        """Run `query` with named bind parameters and return its cursor."""
        pass

    async def ping(self) -> None:
        """Round-trip a trivial statement to prove the session works."""
        cursor = await self.execute("SELECT 1", {})
        try:
            await cursor.next()
        finally:
            await cursor.close()

    @abstractmethod
    async def close(self) -> None:
        pass
