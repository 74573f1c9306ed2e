"""
Configuration models for trickle.

ExportConfig holds everything a run needs: where state, templates and
output live, how far back a first sync reaches, timeouts, the failure
policy, the source connection and the optional remote destination.

Example trickle.yml:
    ```yaml
    state_file: ./state.json
    sql_dir: ./sql
    export_dir: ./export
    default_lookback_days: 30
    failure_policy: stop_on_first_failure

    timeouts:
      connect: 30
      execution: 300

    source:
      type: odbc
      driver: ODBC Driver 18 for SQL Server
      server: myserver.database.windows.net
      database: crm
      user: exporter
      password: ${TRICKLE_DB_PASSWORD}

    remote:
      account_url: https://mystorage.dfs.core.windows.net
      filesystem: landing
      prefix: exports/crm
      credential: managed_identity
    ```
"""
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from trickle.utility.path_helper import PathHelper

VALID_CREDENTIALS = ["managed_identity", "service_principal", "storage_key", "default"]
VALID_AUTHENTICATIONS = ["sql_password", "azure_ad"]


class FailurePolicy(str, Enum):
    """What the orchestrator does after an entity fails."""

    STOP_ON_FIRST_FAILURE = "stop_on_first_failure"
    CONTINUE_AND_REPORT_ALL = "continue_and_report_all"


class TimeoutConfig(BaseModel):
    """Timeouts in seconds."""

    connect: int = Field(
        default=30, ge=1, le=3600, description="Bounds opening the source session"
    )
    execution: int = Field(
        default=300,
        ge=1,
        le=86400,
        description="Bounds the streaming phase of the whole run",
    )


class SourceConfig(BaseModel):
    """
    Relational source reached through ODBC.

    Either give a complete `connection_string`, or `server` and `database`
    plus credentials and let trickle build one.
    """

    type: str = Field(default="odbc", description="Source type")
    connection_string: Optional[str] = Field(
        default=None, description="Complete ODBC connection string"
    )
    driver: str = Field(
        default="ODBC Driver 18 for SQL Server", description="ODBC driver name"
    )
    server: Optional[str] = Field(default=None, description="Database host")
    port: Optional[int] = Field(default=None, ge=1, le=65535, description="Port")
    database: Optional[str] = Field(default=None, description="Database name")
    user: Optional[str] = Field(default=None, description="Login user")
    password: Optional[str] = Field(default=None, description="Login password")
    authentication: str = Field(
        default="sql_password",
        description="Authentication method: sql_password or azure_ad",
    )
    encrypt: str = Field(default="Yes", description="Encrypt the connection")
    trust_cert: str = Field(default="No", description="Trust server certificate")
    ping_query: str = Field(
        default="SELECT 1", description="Statement used to test the connection"
    )
    options: Dict[str, Any] = Field(
        default_factory=dict, description="Extra connection string attributes"
    )

    @field_validator("authentication")
    @classmethod
    def validate_authentication(cls, v):
        if v not in VALID_AUTHENTICATIONS:
            raise ValueError(
                f"Authentication must be one of {VALID_AUTHENTICATIONS}, got '{v}'"
            )
        return v

    @model_validator(mode="after")
    def validate_target(self):
        """Require either a connection string or server and database."""
        if not self.connection_string and not (self.server and self.database):
            raise ValueError(
                "Source requires either connection_string or both server and database"
            )
        return self


class RemoteConfig(BaseModel):
    """
    Azure Data Lake Storage Gen2 destination.

    When present, output files are uploaded under `prefix` and the state
    file is mirrored to `<prefix>state.json`.
    """

    account_url: str = Field(..., description="ADLS Gen2 account URL")
    filesystem: str = Field(..., description="Filesystem/container name")
    prefix: str = Field(default="", description="Key prefix for uploads")
    credential: str = Field(
        default="managed_identity",
        description=(
            "Authentication method: managed_identity, service_principal, "
            "storage_key or default"
        ),
    )
    tenant_id: Optional[str] = Field(
        None, description="Tenant ID for service principal"
    )
    client_id: Optional[str] = Field(
        None, description="Client ID for service principal"
    )
    client_secret: Optional[str] = Field(
        None, description="Client secret for service principal"
    )
    storage_account_key: Optional[str] = Field(None, description="Storage account key")

    @field_validator("account_url")
    @classmethod
    def validate_account_url(cls, v):
        if not v.startswith("https://"):
            raise ValueError(f"account_url must start with https://, got '{v}'")
        return v.rstrip("/")

    @field_validator("prefix")
    @classmethod
    def normalize_prefix(cls, v):
        return PathHelper.normalize_prefix(v)

    @field_validator("credential")
    @classmethod
    def validate_credential(cls, v):
        if v not in VALID_CREDENTIALS:
            raise ValueError(
                f"Credential must be one of {VALID_CREDENTIALS}, got '{v}'"
            )
        return v

    @model_validator(mode="after")
    def validate_secrets(self):
        """Validate the secrets the chosen credential needs."""
        if self.credential == "service_principal":
            if not all([self.tenant_id, self.client_id, self.client_secret]):
                raise ValueError(
                    "Service principal requires tenant_id, client_id, and client_secret"
                )
        if self.credential == "storage_key" and not self.storage_account_key:
            raise ValueError("Storage key authentication requires storage_account_key")
        return self

    @property
    def state_key(self) -> str:
        return PathHelper.remote_state_key(self.prefix)


class ExportConfig(BaseModel):
    """Top-level configuration for an export run."""

    name: str = Field(default="trickle", description="Run name, used in run IDs")
    state_file: str = Field(default="./state.json", description="Watermark state file")
    sql_dir: str = Field(default="./sql", description="Directory of query templates")
    export_dir: str = Field(default="./export", description="Directory for CSV output")
    default_lookback_days: int = Field(
        default=30,
        ge=0,
        le=3650,
        description="How far back the first sync of an entity reaches",
    )
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    failure_policy: FailurePolicy = Field(
        default=FailurePolicy.STOP_ON_FIRST_FAILURE,
        description="stop_on_first_failure or continue_and_report_all",
    )
    flush_every: int = Field(
        default=1000, ge=1, description="Rows between flushes of the output file"
    )
    dry_run: bool = Field(
        default=False, description="Validate configuration, state and templates only"
    )
    verbose: bool = Field(default=False, description="Debug logging")
    source: Optional[SourceConfig] = Field(default=None, description="Row source")
    remote: Optional[RemoteConfig] = Field(
        default=None, description="Optional ADLS destination and state mirror"
    )

    @field_validator("state_file", "sql_dir", "export_dir")
    @classmethod
    def validate_path(cls, v):
        if not v or not v.strip():
            raise ValueError("Path must not be empty")
        return v

    @property
    def sink_type(self) -> str:
        return "adls" if self.remote is not None else "local"

    def ensure_dirs(self) -> None:
        """Create the export directory and the state file's parent."""
        Path(self.export_dir).mkdir(parents=True, exist_ok=True)
        Path(self.state_file).parent.mkdir(parents=True, exist_ok=True)
