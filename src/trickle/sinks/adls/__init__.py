"""
Azure Data Lake Storage Gen2 sink.
"""

from .sink import ADLSSink

__all__ = ["ADLSSink"]
