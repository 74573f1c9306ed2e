"""
ODBC row source.
"""

from .source import OdbcRowCursor, OdbcRowSource, bind_named_parameters

__all__ = ["OdbcRowCursor", "OdbcRowSource", "bind_named_parameters"]
