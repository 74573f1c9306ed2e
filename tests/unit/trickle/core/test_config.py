"""
Tests for configuration models.
"""
import pytest
from pydantic import ValidationError

from trickle.core.config import (
    ExportConfig,
    FailurePolicy,
    RemoteConfig,
    SourceConfig,
    TimeoutConfig,
)


class TestExportConfig:
    def test_defaults(self):
        config = ExportConfig()

        assert config.state_file == "./state.json"
        assert config.sql_dir == "./sql"
        assert config.export_dir == "./export"
        assert config.default_lookback_days == 30
        assert config.timeouts.connect == 30
        assert config.timeouts.execution == 300
        assert config.failure_policy is FailurePolicy.STOP_ON_FIRST_FAILURE
        assert config.sink_type == "local"

    @pytest.mark.parametrize("days", [-1, 3651])
    def test_lookback_bounds(self, days):
        with pytest.raises(ValidationError):
            ExportConfig(default_lookback_days=days)

    def test_empty_path_rejected(self):
        with pytest.raises(ValidationError, match="must not be empty"):
            ExportConfig(export_dir="  ")

    def test_failure_policy_from_string(self):
        config = ExportConfig(failure_policy="continue_and_report_all")
        assert config.failure_policy is FailurePolicy.CONTINUE_AND_REPORT_ALL

    def test_remote_selects_adls_sink(self):
        config = ExportConfig(
            remote={"account_url": "https://acct.dfs.core.windows.net", "filesystem": "fs"}
        )
        assert config.sink_type == "adls"

    def test_ensure_dirs(self, temp_dir):
        config = ExportConfig(
            export_dir=str(temp_dir / "out" / "csv"),
            state_file=str(temp_dir / "state" / "state.json"),
        )

        config.ensure_dirs()

        assert (temp_dir / "out" / "csv").is_dir()
        assert (temp_dir / "state").is_dir()


class TestTimeoutConfig:
    @pytest.mark.parametrize("field", ["connect", "execution"])
    def test_must_be_positive(self, field):
        with pytest.raises(ValidationError):
            TimeoutConfig(**{field: 0})


class TestSourceConfig:
    def test_server_and_database(self):
        config = SourceConfig(server="db", database="crm")
        assert config.type == "odbc"

    def test_connection_string_alone(self):
        SourceConfig(connection_string="DSN=crm")

    def test_requires_a_target(self):
        with pytest.raises(ValidationError, match="connection_string"):
            SourceConfig(server="db")

    def test_unknown_authentication(self):
        with pytest.raises(ValidationError, match="Authentication"):
            SourceConfig(server="db", database="crm", authentication="kerberos")


class TestRemoteConfig:
    def test_normalizes(self):
        config = RemoteConfig(
            account_url="https://acct.dfs.core.windows.net/",
            filesystem="fs",
            prefix="/exports/crm",
        )

        assert config.account_url == "https://acct.dfs.core.windows.net"
        assert config.prefix == "exports/crm/"
        assert config.state_key == "exports/crm/state.json"

    def test_empty_prefix(self):
        config = RemoteConfig(account_url="https://a.dfs.core.windows.net", filesystem="fs")
        assert config.prefix == ""
        assert config.state_key == "state.json"

    def test_requires_https(self):
        with pytest.raises(ValidationError, match="https"):
            RemoteConfig(account_url="http://a.dfs.core.windows.net", filesystem="fs")

    def test_service_principal_needs_secrets(self):
        with pytest.raises(ValidationError, match="tenant_id"):
            RemoteConfig(
                account_url="https://a.dfs.core.windows.net",
                filesystem="fs",
                credential="service_principal",
                client_id="id",
            )

    def test_storage_key_needs_key(self):
        with pytest.raises(ValidationError, match="storage_account_key"):
            RemoteConfig(
                account_url="https://a.dfs.core.windows.net",
                filesystem="fs",
                credential="storage_key",
            )

    def test_unknown_credential(self):
        with pytest.raises(ValidationError, match="Credential"):
            RemoteConfig(
                account_url="https://a.dfs.core.windows.net",
                filesystem="fs",
                credential="magic",
            )
