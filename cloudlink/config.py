"""Configuration loading for cloudlink.

Supports two configuration sources:
1. Environment variables (for CI/CD) - takes priority
2. config.json file (for local development)

Environment Variable Format:
    PROVIDER_{KEY}=Name|Kind|Endpoint|Backend
    {KEY}_ACCOUNT=xxx
    {KEY}_SECRET=xxx          (optional for the mock backend)
    {KEY}_REGION=xxx          (optional)

Example:
    PROVIDER_S3=Amazon S3|storage|https://s3.amazonaws.com|real
    S3_ACCOUNT=your-access-key
    S3_SECRET=your-secret-key
    S3_REGION=us-east-1
"""

import json
import os
from pathlib import Path

from cloudlink.models import BackendKind, ProviderConfig


class ConfigError(Exception):
    """Raised when configuration loading fails."""

    pass


# Required fields for a provider configuration
REQUIRED_FIELDS = [
    "provider_name",
    "kind",
    "endpoint_url",
    "account",
]

KINDS = ("storage", "dns", "compute")
ADDRESSING_STYLES = ("path", "virtual")


def _backend(value: str, key: str) -> BackendKind:
    try:
        return BackendKind(value.lower())
    except ValueError:
        raise ConfigError(f"Unknown backend '{value}' for provider '{key}'") from None


def _validate(config: ProviderConfig) -> ProviderConfig:
    if config.kind not in KINDS:
        raise ConfigError(
            f"Unknown kind '{config.kind}' for provider '{config.key}'. "
            f"Expected one of: {', '.join(KINDS)}"
        )
    if config.addressing_style not in ADDRESSING_STYLES:
        raise ConfigError(
            f"Unknown addressing style '{config.addressing_style}' for provider '{config.key}'"
        )
    if config.backend is BackendKind.REAL and config.kind != "dns" and not config.secret:
        raise ConfigError(f"Provider '{config.key}' uses the real backend but has no secret")
    return config


def load_from_json(config_path: str) -> dict[str, ProviderConfig]:
    """Load provider configurations from a JSON file.

    Args:
        config_path: Path to the config.json file.

    Returns:
        Dictionary mapping provider keys to ProviderConfig objects.
        Only enabled providers are included.

    Raises:
        ConfigError: If file doesn't exist, contains invalid JSON,
                    or is missing required fields.
    """
    path = Path(config_path)

    if not path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in config file: {e}") from e

    providers: dict[str, ProviderConfig] = {}

    for key, config in data.items():
        # Skip disabled providers
        if not config.get("enabled", True):
            continue

        for field in REQUIRED_FIELDS:
            if field not in config:
                raise ConfigError(
                    f"Missing required field '{field}' for provider '{key}'"
                )

        providers[key] = _validate(ProviderConfig(
            key=key,
            provider_name=config["provider_name"],
            kind=config["kind"],
            endpoint_url=config["endpoint_url"],
            account=config["account"],
            secret=config.get("secret"),
            region_name=config.get("region_name", "us-east-1"),
            backend=_backend(config.get("backend", "real"), key),
            addressing_style=config.get("addressing_style", "path"),
            persistent=bool(config.get("persistent", False)),
            timeout=float(config.get("timeout", 60.0)),
            enabled=True,
        ))

    return providers


def load_from_env() -> dict[str, ProviderConfig]:
    """Load provider configurations from environment variables.

    Discovers providers by looking for PROVIDER_* environment variables.
    For each provider, expects corresponding credential variables.

    Returns:
        Dictionary mapping provider keys to ProviderConfig objects.

    Raises:
        ConfigError: If environment variables are malformed or
                    required credential variables are missing.
    """
    providers: dict[str, ProviderConfig] = {}

    for env_key, env_value in os.environ.items():
        if not env_key.startswith("PROVIDER_"):
            continue

        # "PROVIDER_S3" -> "S3"
        provider_key = env_key[len("PROVIDER_"):]

        parts = env_value.split("|")
        if len(parts) != 4:
            raise ConfigError(
                f"Invalid format for {env_key}. Expected: Name|Kind|Endpoint|Backend"
            )

        name, kind, endpoint, backend = parts

        account_var = f"{provider_key}_ACCOUNT"
        account = os.environ.get(account_var)
        if not account:
            raise ConfigError(f"Missing environment variable: {account_var}")

        providers[provider_key] = _validate(ProviderConfig(
            key=provider_key,
            provider_name=name,
            kind=kind,
            endpoint_url=endpoint,
            account=account,
            secret=os.environ.get(f"{provider_key}_SECRET"),
            region_name=os.environ.get(f"{provider_key}_REGION", "us-east-1"),
            backend=_backend(backend, provider_key),
            enabled=True,
        ))

    return providers


def has_env_providers() -> bool:
    """Check if any PROVIDER_* environment variables exist."""
    return any(key.startswith("PROVIDER_") for key in os.environ)


def load_providers(
    config_path: str = "config.json",
) -> dict[str, ProviderConfig]:
    """Load provider configurations with environment priority.

    Priority order:
    1. Environment variables (if any PROVIDER_* vars exist)
    2. config.json file

    Args:
        config_path: Path to config.json (used as fallback).

    Returns:
        Dictionary mapping provider keys to ProviderConfig objects.

    Raises:
        ConfigError: If no providers are configured or all are disabled.
    """
    providers: dict[str, ProviderConfig] = {}

    if has_env_providers():
        providers = load_from_env()
    elif Path(config_path).exists():
        providers = load_from_json(config_path)

    if not providers:
        raise ConfigError(
            "No providers configured. Set PROVIDER_* environment variables "
            "or create a config.json file with at least one enabled provider."
        )

    return providers
