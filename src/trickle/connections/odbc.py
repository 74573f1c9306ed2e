"""
ODBC connection factory.

Builds pyodbc connections from a SourceConfig, either from a complete
connection string or from driver/server/database/user/password. With
`authentication: azure_ad` an Azure AD access token is passed to the
driver instead of a password (SQL Server and Azure SQL).

Opening the connection runs in a worker thread and is bounded by the
connect timeout twice: pyodbc's login timeout, and an asyncio timeout in
case the driver ignores it.
"""
import asyncio
import struct
import time
from typing import Any, Dict, Optional

import pyodbc
from azure.core.credentials import AccessToken
from azure.identity import DefaultAzureCredential

from trickle.core.config import SourceConfig
from trickle.messages import get_logger
from trickle.utility.exceptions import SourceConnectionError, SourceError

from .base import BaseConnection


class OdbcConnection(BaseConnection):
    """
    ODBC connection factory.

    Example:
        ```python
        factory = OdbcConnection(
            SourceConfig(server="db.example.com", database="crm",
                         user="exporter", password="..."),
            connect_timeout=30,
        )
        conn = await factory.get_connection()
        ```
    """

    # SQL Server constant for access token
    SQL_COPT_SS_ACCESS_TOKEN = 1256

    # Token refresh buffer (seconds before expiry)
    TOKEN_EXPIRY_BUFFER = 300

    TOKEN_SCOPE = "https://database.windows.net/.default"

    def __init__(self, config: SourceConfig, connect_timeout: int = 30):
        self.config = config
        self.connect_timeout = connect_timeout
        self._credential: Optional[DefaultAzureCredential] = None
        self._token: Optional[AccessToken] = None
        self.logger = get_logger("trickle.connections.odbc")

    async def get_connection(self) -> pyodbc.Connection:
        """
        Open a new connection.

        Raises:
            SourceConnectionError: If the source is unreachable or the
                connect timeout expires
            SourceError: For other driver errors (bad driver, bad login)
        """
        connect_kwargs: Dict[str, Any] = {"timeout": self.connect_timeout}
        if self.config.authentication == "azure_ad":
            token = await self._get_token()
            connect_kwargs["attrs_before"] = {
                self.SQL_COPT_SS_ACCESS_TOKEN: self._convert_token_to_bytes(token)
            }

        conn_str = self.build_connection_string()
        self.logger.debug(f"Connecting to {self.describe()}")

        try:
            async with asyncio.timeout(self.connect_timeout):
                conn = await asyncio.to_thread(
                    pyodbc.connect, conn_str, **connect_kwargs
                )
        except TimeoutError as e:
            raise SourceConnectionError(
                f"Timed out after {self.connect_timeout}s "
                f"connecting to {self.describe()}",
                operation="connect",
            ) from e
        except pyodbc.Error as e:
            raise self._classify(e) from e

        self.logger.debug(f"Connected to {self.describe()}")
        return conn

    async def close_connection(self, conn: pyodbc.Connection) -> None:
        try:
            if conn:
                await asyncio.to_thread(conn.close)
                self.logger.debug("Connection closed")
        except pyodbc.Error as e:
            self.logger.warning(f"Error closing connection: {str(e)}")

    def build_connection_string(self) -> str:
        """ODBC connection string for the configured source."""
        if self.config.connection_string:
            return self.config.connection_string

        server = self.config.server
        if self.config.port:
            server = f"{server},{self.config.port}"

        parts = [
            f"DRIVER={{{self.config.driver}}}",
            f"SERVER={server}",
            f"DATABASE={self.config.database}",
        ]
        if self.config.authentication == "sql_password":
            if self.config.user:
                parts.append(f"UID={self.config.user}")
            if self.config.password:
                parts.append(f"PWD={{{self.config.password}}}")
        parts.append(f"Encrypt={self.config.encrypt}")
        parts.append(f"TrustServerCertificate={self.config.trust_cert}")
        for key, value in self.config.options.items():
            parts.append(f"{key}={value}")
        return ";".join(parts)

    def describe(self) -> str:
        """Connection target for logs, without credentials."""
        if self.config.connection_string:
            return "configured connection string"
        user = f"{self.config.user}@" if self.config.user else ""
        host = self.config.server.split(".")[0] if self.config.server else ""
        return f"{user}{host}/{self.config.database}"

    def _classify(self, e: pyodbc.Error) -> SourceError:
        error_msg = str(e)
        sqlstate = e.args[0] if e.args and isinstance(e.args[0], str) else None

        if sqlstate == "IM002" or "IM002" in error_msg:
            return SourceError(
                f"ODBC driver not found. Expected: {self.config.driver}",
                operation="connect",
            )

        # 08xxx are connection-related per SQL standard
        if (sqlstate and sqlstate.startswith("08")) or "08S01" in error_msg:
            return SourceConnectionError(
                f"Connection error: {error_msg}", operation="connect"
            )

        return SourceError(
            f"Database connection failed: {error_msg}", operation="connect"
        )

    async def _get_token(self) -> AccessToken:
        """Azure AD token, cached until TOKEN_EXPIRY_BUFFER before expiry."""
        if self._token:
            time_remaining = self._token.expires_on - time.time()
            if time_remaining > self.TOKEN_EXPIRY_BUFFER:
                return self._token

        if self._credential is None:
            self._credential = DefaultAzureCredential()
        self.logger.debug("Fetching new Azure AD token")
        self._token = await asyncio.to_thread(
            self._credential.get_token, self.TOKEN_SCOPE
        )
        return self._token

    def _convert_token_to_bytes(self, token: AccessToken) -> bytes:
        # Length-prefixed UTF-16LE, as the SQL Server ODBC driver expects
        encoded_bytes = token.token.encode("utf-16-le")
        return struct.pack("<i", len(encoded_bytes)) + encoded_bytes

