"""
Tests for the exception hierarchy.
"""
from trickle.utility.exceptions import (
    SinkError,
    SinkUploadError,
    SourceConnectionError,
    SourceError,
    TrickleError,
    WatermarkError,
    WatermarkPersistError,
)


def test_operation_prefixes_message():
    error = SourceConnectionError("host unreachable", operation="connect")

    assert str(error) == "connect: host unreachable"
    assert error.message == "host unreachable"
    assert error.operation == "connect"


def test_message_without_operation():
    assert str(TrickleError("plain")) == "plain"


def test_hierarchy():
    assert issubclass(SourceConnectionError, SourceError)
    assert issubclass(SinkUploadError, SinkError)
    assert issubclass(WatermarkPersistError, WatermarkError)
    assert issubclass(WatermarkError, TrickleError)


def test_upload_error_keeps_local_path():
    error = SinkUploadError("failed", operation="upload output", local_path="/tmp/x.csv")
    assert error.local_path == "/tmp/x.csv"
