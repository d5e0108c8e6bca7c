"""Well-known OAuth2 provider endpoints.

A Provider is just the pair of URIs needed for the Authorization Code Grant:
the authorization endpoint the browser is sent to, and the token endpoint the
server exchanges codes at. The built-in table covers common services; anything
else can be described with :func:`custom` or a ``{auth_uri, token_uri}`` table
in the configuration file.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from codegrant.errors import ConfigError


@dataclass(frozen=True)
class Provider:
    """Authorization and token endpoint URIs of an OAuth2 service."""

    auth_uri: str
    token_uri: str


Discord = Provider(
    auth_uri="https://discordapp.com/api/oauth2/authorize",
    token_uri="https://discordapp.com/api/oauth2/token",
)
Facebook = Provider(
    auth_uri="https://www.facebook.com/v3.1/dialog/oauth",
    token_uri="https://graph.facebook.com/v3.1/oauth/access_token",
)
GitHub = Provider(
    auth_uri="https://github.com/login/oauth/authorize",
    token_uri="https://github.com/login/oauth/access_token",
)
Google = Provider(
    auth_uri="https://accounts.google.com/o/oauth2/v2/auth",
    token_uri="https://www.googleapis.com/oauth2/v4/token",
)
Reddit = Provider(
    auth_uri="https://www.reddit.com/api/v1/authorize",
    token_uri="https://www.reddit.com/api/v1/access_token",
)
Yahoo = Provider(
    auth_uri="https://api.login.yahoo.com/oauth2/request_auth",
    token_uri="https://api.login.yahoo.com/oauth2/get_token",
)

# Names are matched exactly, as they appear in configuration files
KNOWN_PROVIDERS: Mapping[str, Provider] = MappingProxyType(
    {
        "Discord": Discord,
        "Facebook": Facebook,
        "GitHub": GitHub,
        "Google": Google,
        "Reddit": Reddit,
        "Yahoo": Yahoo,
    }
)


def lookup(name: str) -> Provider | None:
    """Return the well-known provider called ``name``, or None."""
    return KNOWN_PROVIDERS.get(name)


def custom(auth_uri: str, token_uri: str) -> Provider:
    """Describe a provider that is not in the built-in table.

    Args:
        auth_uri: The provider's authorization endpoint
        token_uri: The provider's token endpoint

    Returns:
        Provider carrying exactly the given URIs

    Raises:
        ConfigError: If either URI is empty or not a string
    """
    for key, value in (("auth_uri", auth_uri), ("token_uri", token_uri)):
        if not isinstance(value, str):
            raise ConfigError.bad_type(key, "string", value)
        if not value:
            raise ConfigError(key, message=f"Configuration key '{key}' must not be empty")
    return Provider(auth_uri=auth_uri, token_uri=token_uri)


def from_config_value(value: Any) -> Provider:
    """Resolve the ``provider`` entry of a client registration.

    The entry is either the name of a well-known provider or a table with
    ``auth_uri`` and ``token_uri`` keys.

    Raises:
        ConfigError: If the name is unknown or the value has the wrong shape
    """
    if isinstance(value, Provider):
        return value

    if isinstance(value, str):
        provider = lookup(value)
        if provider is None:
            raise ConfigError(
                "provider",
                expected="known provider or table",
                actual=f"unknown provider '{value}'",
            )
        return provider

    if isinstance(value, Mapping):
        if "auth_uri" not in value:
            raise ConfigError("provider.auth_uri")
        if "token_uri" not in value:
            raise ConfigError("provider.token_uri")
        return custom(value["auth_uri"], value["token_uri"])

    raise ConfigError.bad_type("provider", "known provider or table", value)
