"""
Workspace finds and loads trickle configuration.

Configuration is layered, later layers winning:

1. Defaults from ExportConfig
2. trickle.yml (found by walking up from the working directory, or given
   explicitly), with ${VAR} and ${VAR:-default} expanded from the
   environment
3. TRICKLE_* environment variables
4. Overrides passed in by the caller (CLI flags)
"""
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from trickle.core.config import ExportConfig
from trickle.messages import get_logger
from trickle.utility.exceptions import ConfigError

CONFIG_FILE_NAME = "trickle.yml"

# Environment variable -> dotted config key
ENV_OVERRIDES = {
    "TRICKLE_STATE_FILE": "state_file",
    "TRICKLE_SQL_DIR": "sql_dir",
    "TRICKLE_EXPORT_DIR": "export_dir",
    "TRICKLE_DAYS_BACK": "default_lookback_days",
    "TRICKLE_DB_CONNECTION_STRING": "source.connection_string",
    "TRICKLE_DB_USER": "source.user",
    "TRICKLE_DB_PASSWORD": "source.password",
}

ENV_PATTERN = re.compile(r"\$\{([^:}]+)(?::-([^}]*))?\}")


class Workspace:
    """A trickle project: an optional trickle.yml and the settings it holds."""

    def __init__(self, config_file: Optional[Path] = None):
        self.config_file = Path(config_file) if config_file else None
        self.root = self.config_file.parent if self.config_file else Path.cwd()
        self.logger = get_logger("trickle.workspace")

    @staticmethod
    def find(start_path: Optional[Path] = None) -> "Workspace":
        """
        Find trickle.yml by walking up directories from start_path.

        Raises:
            ConfigError: If trickle.yml is not found
        """
        current = Path(start_path or Path.cwd()).resolve()
        searched_paths = []

        while True:
            project_file = current / CONFIG_FILE_NAME
            searched_paths.append(str(project_file))
            if project_file.exists():
                return Workspace(project_file)
            if current == current.parent:
                break
            current = current.parent

        searched = "\n".join(f"  - {path}" for path in searched_paths)
        raise ConfigError(
            f"No {CONFIG_FILE_NAME} found from {start_path or Path.cwd()}\n\n"
            f"Searched locations:\n{searched}"
        )

    @classmethod
    def discover(cls, config_file: Optional[str] = None) -> "Workspace":
        """
        Workspace for an explicit file, a discovered one, or none at all.

        Raises:
            ConfigError: If an explicit file does not exist
        """
        if config_file:
            path = Path(config_file)
            if not path.is_file():
                raise ConfigError(f"Config file not found: {path}")
            return cls(path)
        try:
            return cls.find()
        except ConfigError:
            return cls()

    def prepare(self, overrides: Optional[Dict[str, Any]] = None) -> ExportConfig:
        """
        Build the validated ExportConfig for this workspace.

        Args:
            overrides: Dotted keys to values (e.g. {"timeouts.connect": 10});
                None values are ignored

        Raises:
            ConfigError: If the file cannot be read or validation fails
        """
        data = self._read_config_file()
        data = self._expand_env_vars(data)

        for env_name, key in ENV_OVERRIDES.items():
            value = os.getenv(env_name)
            if not value:
                continue
            # Credentials alone do not make a source section
            if key in ("source.user", "source.password") and "source" not in data:
                continue
            _set_dotted(data, key, value)

        for key, value in (overrides or {}).items():
            if value is not None:
                _set_dotted(data, key, value)

        try:
            return ExportConfig.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    def _read_config_file(self) -> Dict[str, Any]:
        if self.config_file is None:
            return {}
        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read {self.config_file}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"{self.config_file} must contain a mapping")
        self.logger.debug(f"Loaded configuration from {self.config_file}")
        return data

    def _expand_env_vars(self, data: Any) -> Any:
        """
        Recursively expand ${VAR_NAME} and ${VAR_NAME:-default}.

        Raises:
            ConfigError: If a variable is not set and has no default
        """
        if isinstance(data, str):

            def replace_env_var(match):
                var_name = match.group(1)
                default_value = match.group(2)
                env_value = os.getenv(var_name)
                if env_value is not None:
                    return env_value
                if default_value is not None:
                    return default_value
                raise ConfigError(
                    f"Environment variable '{var_name}' is not set and no default"
                )

            return ENV_PATTERN.sub(replace_env_var, data)

        if isinstance(data, dict):
            return {key: self._expand_env_vars(value) for key, value in data.items()}

        if isinstance(data, list):
            return [self._expand_env_vars(item) for item in data]

        return data


def _set_dotted(data: Dict[str, Any], key: str, value: Any) -> None:
    """Set data["a"]["b"] for key "a.b", creating nested dicts as needed."""
    parts = key.split(".")
    current = data
    for part in parts[:-1]:
        if not isinstance(current.get(part), dict):
            current[part] = {}
        current = current[part]
    current[parts[-1]] = value
