"""
Azure Data Lake Storage Gen2 operations for trickle.

Thin async wrapper over the blocking `azure-storage-filedatalake` client:
every SDK call runs in a worker thread, transient Azure errors are retried
with exponential backoff, and whatever still fails after the retries is
raised as RemoteStorageError.

Used by the ADLS sink to upload finished CSV files and by the watermark
store to mirror the state file.
"""
import asyncio
import os
from typing import Optional

from azure.core.credentials import AzureNamedKeyCredential
from azure.core.exceptions import ResourceNotFoundError
from azure.identity import (
    ClientSecretCredential,
    DefaultAzureCredential,
    ManagedIdentityCredential,
)
from azure.storage.filedatalake import DataLakeServiceClient, FileSystemClient

from trickle.messages import get_logger
from trickle.utility.exceptions import ConfigError, RemoteStorageError
from trickle.utility.retry import TRANSIENT_EXCEPTIONS, with_retry


class ADLSOperations:
    """
    File operations within one ADLS Gen2 filesystem (container).

    Paths are relative to the filesystem root, e.g.
    `exports/crm.orders/crm.orders__2025-01-01T00-00-00.csv`.
    """

    def __init__(self, file_system_client: FileSystemClient, timeout: int = 300):
        self.file_system_client = file_system_client
        self.timeout = timeout
        self.logger = get_logger("trickle.adls")

    @classmethod
    def from_config(cls, config) -> "ADLSOperations":
        """
        Build operations for a RemoteConfig.

        Raises:
            ConfigError: If the credential settings are incomplete
        """
        try:
            service_client = DataLakeServiceClient(
                account_url=config.account_url, credential=_build_credential(config)
            )
        except ValueError as e:
            raise ConfigError(f"Invalid remote configuration: {e}") from e
        return cls(service_client.get_file_system_client(config.filesystem))

    async def upload_file(self, local_path: str, dest_path: str) -> str:
        """
        Upload a local file, overwriting any existing object.

        Returns:
            str: Path where the file was uploaded

        Raises:
            RemoteStorageError: If the upload fails after retries
        """
        try:
            await self._upload_file(local_path, dest_path)
        except TRANSIENT_EXCEPTIONS as e:
            raise RemoteStorageError(
                f"Failed to upload {local_path} to {dest_path}: {e}",
                operation="upload file",
            ) from e
        except OSError as e:
            raise RemoteStorageError(
                f"Cannot read {local_path}: {e}", operation="upload file"
            ) from e
        self.logger.debug(f"Uploaded {local_path} to {dest_path}")
        return dest_path

    async def upload_bytes(self, data: bytes, dest_path: str) -> str:
        """Upload bytes, overwriting any existing object."""
        try:
            await self._upload_bytes(data, dest_path)
        except TRANSIENT_EXCEPTIONS as e:
            raise RemoteStorageError(
                f"Failed to upload {dest_path}: {e}", operation="upload bytes"
            ) from e
        return dest_path

    async def read_bytes(self, path: str) -> Optional[bytes]:
        """
        Download a file.

        Returns:
            The file content, or None if the file does not exist
        """
        try:
            return await self._read_bytes(path)
        except ResourceNotFoundError:
            self.logger.debug(f"No file found at {path}")
            return None
        except TRANSIENT_EXCEPTIONS as e:
            raise RemoteStorageError(
                f"Failed to read {path}: {e}", operation="read file"
            ) from e

    # Retried SDK calls

    @with_retry(logger_name="trickle.adls")
    async def _upload_file(self, local_path: str, dest_path: str) -> None:
        file_client = self.file_system_client.get_file_client(dest_path)
        length = os.path.getsize(local_path)

        def upload():
            with open(local_path, "rb") as f:
                file_client.upload_data(
                    f, length=length, overwrite=True, timeout=self.timeout
                )

        await asyncio.to_thread(upload)

    @with_retry(logger_name="trickle.adls")
    async def _upload_bytes(self, data: bytes, dest_path: str) -> None:
        file_client = self.file_system_client.get_file_client(dest_path)
        await asyncio.to_thread(
            file_client.upload_data, data, overwrite=True, timeout=self.timeout
        )

    @with_retry(give_up_on=ResourceNotFoundError, logger_name="trickle.adls")
    async def _read_bytes(self, path: str) -> bytes:
        file_client = self.file_system_client.get_file_client(path)

        def download() -> bytes:
            return file_client.download_file(timeout=self.timeout).readall()

        return await asyncio.to_thread(download)


def _account_name(account_url: str) -> str:
    # https://{account}.dfs.core.windows.net
    return (
        account_url.replace("https://", "")
        .replace(".dfs.core.windows.net", "")
        .replace(".dfs.fabric.microsoft.com", "")
        .strip("/")
    )


def _build_credential(config):
    """Credential object for the configured authentication method."""
    if config.credential == "managed_identity":
        return ManagedIdentityCredential()
    if config.credential == "service_principal":
        if not all([config.tenant_id, config.client_id, config.client_secret]):
            raise ConfigError(
                "Service principal requires tenant_id, client_id, and client_secret"
            )
        return ClientSecretCredential(
            tenant_id=config.tenant_id,
            client_id=config.client_id,
            client_secret=config.client_secret,
        )
    if config.credential == "storage_key":
        if not config.storage_account_key:
            raise ConfigError("Storage key authentication requires storage_account_key")
        return AzureNamedKeyCredential(
            name=_account_name(config.account_url), key=config.storage_account_key
        )
    return DefaultAzureCredential()
