"""
Configuration management and loading.

Handles connection settings for the databases to estimate, either from
CLI options or from a JSON/YAML batch file.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List

import yaml

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 3306
DEFAULT_USER = "root"


@dataclass(frozen=True)
class WorkloadSourceConfiguration:
    """Connection settings for one MySQL-compatible database."""
    database: str
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    user: str = DEFAULT_USER
    password: str = ""

    def __post_init__(self):
        """Validate connection values."""
        if not self.database or not self.database.strip():
            raise ValueError("database is required and cannot be empty")
        if not self.host or not self.host.strip():
            raise ValueError("host cannot be empty")
        if not 0 < self.port < 65536:
            raise ValueError("port must be between 1 and 65535")

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    def connection_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for the database driver."""
        return {
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "password": self.password,
            "database": self.database,
        }


def load_batch_configuration(path: str) -> List[WorkloadSourceConfiguration]:
    """Load and validate a batch of source configurations.

    The file holds a list of mappings with the keys host, port, user,
    password and database; only database is required. JSON and YAML are
    supported, chosen by file extension.

    Args:
        path: Path to a .json, .yaml or .yml file

    Returns:
        List of validated WorkloadSourceConfiguration objects, in file order

    Raises:
        FileNotFoundError: If config file doesn't exist
        json.JSONDecodeError: If JSON is invalid
        yaml.YAMLError: If YAML is invalid
        ValueError: If the format or configuration is invalid
    """
    config_path = Path(path)
    suffix = config_path.suffix.lower()
    if suffix not in (".json", ".yaml", ".yml"):
        raise ValueError(
            "Unknown batch configuration file format. Only json and yaml are supported"
        )
    if not config_path.exists():
        raise FileNotFoundError(f"Batch configuration file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        if suffix == ".json":
            try:
                raw_config = json.load(f)
            except json.JSONDecodeError as e:
                raise json.JSONDecodeError(
                    f"Invalid JSON in config file {path}: {e.msg}", e.doc, e.pos
                )
        else:
            try:
                raw_config = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")

    if not isinstance(raw_config, list):
        raise ValueError("Batch configuration must be a list of sources")

    return [
        _parse_source_config(source_data, f"[{index}]")
        for index, source_data in enumerate(raw_config)
    ]


def _parse_source_config(data: Any, path: str) -> WorkloadSourceConfiguration:
    """Parse and validate one source entry.

    Args:
        data: Source configuration data
        path: Path for error messages

    Returns:
        Validated WorkloadSourceConfiguration

    Raises:
        ValueError: If configuration is invalid
    """
    if not isinstance(data, dict):
        raise ValueError(f"Source {path} must be a dictionary")

    allowed_keys = {'host', 'port', 'user', 'password', 'database'}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    if 'database' not in data:
        raise ValueError(f"Missing required 'database' in {path}")

    for key in ('host', 'user', 'password', 'database'):
        if key in data and not isinstance(data[key], str):
            raise ValueError(f"'{key}' in {path} must be a string")

    port = data.get('port', DEFAULT_PORT)
    if isinstance(port, bool) or not isinstance(port, int):
        raise ValueError(f"'port' in {path} must be an integer")

    try:
        return WorkloadSourceConfiguration(
            database=data['database'],
            host=data.get('host', DEFAULT_HOST),
            port=port,
            user=data.get('user', DEFAULT_USER),
            password=data.get('password', "")
        )
    except ValueError as e:
        raise ValueError(f"Invalid source {path}: {e}")
