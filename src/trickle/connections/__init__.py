"""
Connection management for trickle.

- BaseConnection: Interface for database connection factories
- OdbcConnection: pyodbc connection factory (password or Azure AD auth)
"""
from .base import BaseConnection
from .odbc import OdbcConnection

__all__ = ["BaseConnection", "OdbcConnection"]
