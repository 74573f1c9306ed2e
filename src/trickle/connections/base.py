"""
Base connection interface for database connections.

Defines the contract that database-specific connection factories follow.
"""
from abc import ABC, abstractmethod
from typing import Any


class BaseConnection(ABC):
    """
    Abstract base class for database connection factories.

    Factories know how to build a connection (connection string,
    authentication, timeouts) and how to close it. Blocking driver calls
    must run in asyncio.to_thread() so the event loop is never blocked.
    """

    @abstractmethod
    async def get_connection(self) -> Any:
        """Create and return a new database connection."""
        pass

    @abstractmethod
    async def close_connection(self, conn: Any) -> None:
        pass
