"""
Tests for ADLSOperations with a mocked FileSystemClient.
"""
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from azure.core.credentials import AzureNamedKeyCredential
from azure.core.exceptions import HttpResponseError, ResourceNotFoundError
from tenacity import wait_none

from trickle.core.config import RemoteConfig
from trickle.utility.azure_adls import ADLSOperations, _account_name, _build_credential
from trickle.utility.exceptions import ConfigError, RemoteStorageError


@pytest.fixture
def file_client():
    return MagicMock()


@pytest.fixture
def operations(file_client):
    fs = MagicMock()
    fs.get_file_client.return_value = file_client
    return ADLSOperations(fs, timeout=5)


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    # Skip the real sleeps between retries
    for name in ("_upload_file", "_upload_bytes", "_read_bytes"):
        monkeypatch.setattr(getattr(ADLSOperations, name).retry, "wait", wait_none())


class TestADLSOperations:
    @pytest.mark.asyncio
    async def test_upload_file(self, operations, file_client, temp_dir):
        path = temp_dir / "x.csv"
        path.write_bytes(b"id\n1\n")

        result = await operations.upload_file(str(path), "exports/x.csv")

        assert result == "exports/x.csv"
        operations.file_system_client.get_file_client.assert_called_with("exports/x.csv")
        assert file_client.upload_data.call_args.kwargs["overwrite"] is True
        assert file_client.upload_data.call_args.kwargs["length"] == 5

    @pytest.mark.asyncio
    async def test_upload_retries_then_fails(self, operations, file_client):
        file_client.upload_data.side_effect = HttpResponseError("503")

        with pytest.raises(RemoteStorageError, match="upload bytes"):
            await operations.upload_bytes(b"[]", "state.json")

        assert file_client.upload_data.call_count == 3

    @pytest.mark.asyncio
    async def test_upload_recovers_from_transient_error(self, operations, file_client):
        file_client.upload_data.side_effect = [HttpResponseError("503"), None]

        await operations.upload_bytes(b"[]", "state.json")

        assert file_client.upload_data.call_count == 2

    @pytest.mark.asyncio
    async def test_read_bytes(self, operations, file_client):
        file_client.download_file.return_value.readall.return_value = b"[]"
        assert await operations.read_bytes("state.json") == b"[]"

    @pytest.mark.asyncio
    async def test_read_missing_is_none_without_retry(self, operations, file_client):
        file_client.download_file.side_effect = ResourceNotFoundError("gone")

        assert await operations.read_bytes("state.json") is None
        assert file_client.download_file.call_count == 1

    @pytest.mark.asyncio
    async def test_read_retries_transient_errors(self, operations, file_client):
        download = file_client.download_file
        download.side_effect = [HttpResponseError("503"), download.return_value]
        download.return_value.readall.return_value = b"[]"

        assert await operations.read_bytes("state.json") == b"[]"
        assert download.call_count == 2


class TestCredentials:
    def test_account_name(self):
        assert _account_name("https://acct.dfs.core.windows.net") == "acct"

    def test_storage_key(self):
        config = RemoteConfig(
            account_url="https://acct.dfs.core.windows.net",
            filesystem="fs",
            credential="storage_key",
            storage_account_key="a2V5",
        )
        credential = _build_credential(config)
        assert isinstance(credential, AzureNamedKeyCredential)
        assert credential.named_key.name == "acct"

    def test_incomplete_service_principal(self):
        config = SimpleNamespace(
            credential="service_principal",
            tenant_id="t",
            client_id=None,
            client_secret=None,
        )
        with pytest.raises(ConfigError, match="Service principal"):
            _build_credential(config)

    def test_from_config(self):
        config = RemoteConfig(
            account_url="https://acct.dfs.core.windows.net",
            filesystem="landing",
            credential="storage_key",
            storage_account_key="a2V5",
        )
        operations = ADLSOperations.from_config(config)
        assert operations.file_system_client.file_system_name == "landing"
