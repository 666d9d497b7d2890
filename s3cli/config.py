"""Configuration loading for s3cli.

Settings come from three sources, later ones overriding earlier ones:
1. A JSON config file (``--config``, or ~/.s3cli.json when present)
2. Environment variables
3. Command-line flags

Environment Variables:
    S3CLI_ENDPOINT=http://127.0.0.1:9000
    S3CLI_ACCESS_KEY=xxx
    S3CLI_SECRET_KEY=xxx
    S3CLI_REGION=cn-north-1
    S3CLI_PROFILE=default
    S3CLI_CREDENTIAL_FILE=~/.aws/credentials

Example config file:
    {
        "endpoint": "http://127.0.0.1:9000",
        "access_key": "your-access-key",
        "secret_key": "your-secret-key",
        "region": "us-east-1"
    }
"""

import json
import os
from dataclasses import fields, replace
from pathlib import Path
from typing import Any, Optional

from s3cli.models import ClientConfig


class ConfigurationError(Exception):
    """Raised when settings are missing or invalid."""

    pass


DEFAULT_ENDPOINT = "http://s3test.myshare.io:9090"
DEFAULT_REGION = "cn-north-1"
DEFAULT_CONFIG_PATH = "~/.s3cli.json"

# Environment variable for each ClientConfig field
ENV_VARS = {
    "endpoint": "S3CLI_ENDPOINT",
    "access_key": "S3CLI_ACCESS_KEY",
    "secret_key": "S3CLI_SECRET_KEY",
    "region": "S3CLI_REGION",
    "profile": "S3CLI_PROFILE",
    "credential_file": "S3CLI_CREDENTIAL_FILE",
}

# Fields a config file may set
FILE_FIELDS = frozenset(ENV_VARS)


def load_from_json(config_path: str) -> dict[str, str]:
    """Load settings from a JSON file.

    Args:
        config_path: Path to the config file.

    Returns:
        Dictionary of ClientConfig field names to values.

    Raises:
        ConfigurationError: If the file doesn't exist, contains invalid
                    JSON, or has unknown or non-string fields.
    """
    path = Path(config_path).expanduser()

    if not path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in config file: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError("Config file must contain a JSON object")

    settings: dict[str, str] = {}
    for key, value in data.items():
        if key not in FILE_FIELDS:
            raise ConfigurationError(f"Unknown field '{key}' in config file")
        if not isinstance(value, str):
            raise ConfigurationError(f"Field '{key}' must be a string")
        settings[key] = value

    return settings


def load_from_env() -> dict[str, str]:
    """Load settings from S3CLI_* environment variables.

    Empty variables are ignored.
    """
    settings: dict[str, str] = {}
    for field_name, env_var in ENV_VARS.items():
        value = os.environ.get(env_var)
        if value:
            settings[field_name] = value
    return settings


def load_config(
    config_path: Optional[str] = None,
    overrides: Optional[dict[str, Any]] = None,
) -> ClientConfig:
    """Build the effective client configuration.

    Args:
        config_path: Explicit config file. When None, ~/.s3cli.json is
                    read if it exists.
        overrides: Values from command-line flags. None and '' entries
                    are treated as unset.

    Returns:
        The merged ClientConfig.

    Raises:
        ConfigurationError: If an explicit config file can't be loaded.
    """
    config = ClientConfig(endpoint=DEFAULT_ENDPOINT, region=DEFAULT_REGION)

    if config_path is not None:
        config = replace(config, **load_from_json(config_path))
    elif Path(DEFAULT_CONFIG_PATH).expanduser().exists():
        config = replace(config, **load_from_json(DEFAULT_CONFIG_PATH))

    config = replace(config, **load_from_env())

    if overrides:
        known = {f.name for f in fields(ClientConfig)}
        config = replace(config, **{
            key: value for key, value in overrides.items()
            if key in known and value not in (None, "")
        })

    return config


def require_presign_settings(config: ClientConfig) -> None:
    """Check that static credentials and an endpoint are configured.

    Raises:
        ConfigurationError: If access key, secret key or endpoint is empty.
    """
    if not config.access_key:
        raise ConfigurationError("Unknown access key")
    if not config.secret_key:
        raise ConfigurationError("Unknown secret key")
    if not config.endpoint:
        raise ConfigurationError("Unknown endpoint")
