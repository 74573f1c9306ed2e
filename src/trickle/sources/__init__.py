"""
Collection of row sources.

Importing this package registers every source type with RowSource.create().
"""
from .odbc import OdbcRowSource

__all__ = ["OdbcRowSource"]
