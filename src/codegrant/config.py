"""Configuration for OAuth client registrations.

Client registrations live in a YAML or TOML file under an ``oauth`` table,
one entry per registration:

    [oauth.github]
    provider = "GitHub"
    client_id = "..."
    client_secret = "..."
    redirect_uri = "https://example.com/auth/github"

Process-level settings (cookie secret, log level, config path) come from
environment variables with the CODEGRANT_ prefix.
Example: CODEGRANT_COOKIE_SECURE=false allows the state cookie over plain HTTP.
"""

from __future__ import annotations

import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from codegrant.errors import ConfigError
from codegrant.providers import Provider, from_config_value

LogLevel = Literal["debug", "info", "warning", "error"]


def _parse_yaml(content: str) -> Any:
    return yaml.safe_load(content)


def _parse_toml(content: str) -> Any:
    return tomllib.loads(content)


_PARSERS = {
    ".yaml": ("YAML", _parse_yaml),
    ".yml": ("YAML", _parse_yaml),
    ".toml": ("TOML", _parse_toml),
}


def load_config_from_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML or TOML file holding ``oauth`` registrations.

    An empty file yields an empty dict.

    Raises:
        ConfigError: If the file is missing or unreadable, has an unknown
            suffix, fails to parse, or its top level is not a table
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigError("config_path", message=f"Config file not found: {path}")

    fmt = _PARSERS.get(path.suffix.lower())
    if fmt is None:
        raise ConfigError(
            "config_path",
            message=f"Unsupported config format '{path.suffix}' for {path} (use .toml, .yaml or .yml)",
        )
    fmt_name, parse = fmt

    try:
        data = parse(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError("config_path", message=f"Cannot read config file {path}: {e}") from e
    except (yaml.YAMLError, tomllib.TOMLDecodeError) as e:
        raise ConfigError("config_path", message=f"Invalid {fmt_name} in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError.bad_type("config_path", "table at top level", data)
    return data


def get_config_string(table: Mapping[str, Any], key: str) -> str:
    """Read a required string value from a configuration table."""
    if key not in table:
        raise ConfigError(key)

    value = table[key]
    if not isinstance(value, str):
        raise ConfigError.bad_type(key, "string", value)
    return value


@dataclass(frozen=True)
class OAuthConfig:
    """Configuration for one OAuth client registration.

    Consists of the Provider details, a client_id and client_secret, and the
    redirect_uri registered with the provider. Instances are immutable;
    reconfiguring means building a new one.
    """

    provider: Provider
    client_id: str
    client_secret: str = field(repr=False)
    redirect_uri: str

    def __post_init__(self):
        """Validate that every field is a non-empty string."""
        if not isinstance(self.provider, Provider):
            raise ConfigError.bad_type("provider", "Provider", self.provider)
        if not self.provider.auth_uri:
            raise ConfigError("provider.auth_uri")
        if not self.provider.token_uri:
            raise ConfigError("provider.token_uri")

        for key in ("client_id", "client_secret", "redirect_uri"):
            value = getattr(self, key)
            if not isinstance(value, str):
                raise ConfigError.bad_type(key, "string", value)
            if not value:
                raise ConfigError(key, message=f"Configuration key '{key}' must not be empty")

    @classmethod
    def build(
        cls,
        provider: str | Mapping[str, Any] | Provider,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
    ) -> OAuthConfig:
        """Create a config from a provider selector and client credentials.

        Args:
            provider: A well-known provider name, an ``{auth_uri, token_uri}``
                table, or a Provider
            client_id: OAuth client ID
            client_secret: OAuth client secret
            redirect_uri: The callback URI registered with the provider

        Raises:
            ConfigError: If any value is missing or malformed
        """
        return cls(
            provider=from_config_value(provider),
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
        )

    @classmethod
    def from_config(cls, config: Mapping[str, Any], name: str) -> OAuthConfig:
        """Build the registration ``oauth.<name>`` from a loaded config mapping.

        Raises:
            ConfigError: If the table or any of its keys is missing or mistyped
        """
        oauth = config.get("oauth")
        if oauth is None:
            raise ConfigError("oauth")
        if not isinstance(oauth, Mapping):
            raise ConfigError.bad_type("oauth", "table", oauth)

        table = oauth.get(name)
        if table is None:
            raise ConfigError(f"oauth.{name}")
        if not isinstance(table, Mapping):
            raise ConfigError.bad_type(f"oauth.{name}", "table", table)

        if "provider" not in table:
            raise ConfigError("provider")

        return cls(
            provider=from_config_value(table["provider"]),
            client_id=get_config_string(table, "client_id"),
            client_secret=get_config_string(table, "client_secret"),
            redirect_uri=get_config_string(table, "redirect_uri"),
        )

    @classmethod
    def from_file(cls, path: str | Path, name: str) -> OAuthConfig:
        """Load a config file and build the registration ``oauth.<name>``."""
        return cls.from_config(load_config_from_file(path), name)


class Settings(BaseSettings):
    """Process-level settings, read from CODEGRANT_* environment variables."""

    model_config = SettingsConfigDict(env_prefix="CODEGRANT_", extra="ignore")

    config_path: str | None = Field(
        default=None,
        description="Path to the YAML/TOML file holding the oauth registrations.",
    )
    cookie_secret: str | None = Field(
        default=None,
        repr=False,
        description="Fernet key used to encrypt the state cookie. Generated per process if unset.",
    )
    cookie_secure: bool = Field(
        default=True,
        description="Mark the state cookie Secure (HTTPS only).",
    )
    cookie_max_age: int | None = Field(
        default=None,
        description="Reject state cookies older than this many seconds. None disables the check.",
    )
    token_timeout: float = Field(
        default=30.0,
        description="Timeout in seconds for token endpoint requests.",
    )
    log_level: LogLevel = Field(
        default="info",
        description="Log level (debug, info, warning, error).",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def lowercase_log_level(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the process-wide settings, reading the environment on first use."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def clear_settings() -> None:
    """Forget cached settings so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None
