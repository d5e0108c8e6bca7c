"""The token endpoint's reply to a successful exchange (RFC 6749 §5.1)."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

_KNOWN_FIELDS = ("access_token", "token_type", "expires_in", "refresh_token", "scope")


@dataclass(frozen=True)
class TokenResponse:
    """Access token issued by the authorization server.

    Fields the RFC does not define (``id_token``, provider-specific values)
    are kept in ``extras``. Refresh tokens are passed through untouched;
    nothing here refreshes or stores them.
    """

    access_token: str = field(repr=False)
    # Described in RFC 6749 §7.1, e.g. "bearer"
    token_type: str
    expires_in: int | None = None
    refresh_token: str | None = field(default=None, repr=False)
    # Space-separated; only sent when it differs from the requested scopes
    scope: str | None = None
    extras: Mapping[str, Any] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        object.__setattr__(self, "extras", MappingProxyType(dict(self.extras)))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TokenResponse:
        """Parse a decoded JSON token response.

        Raises:
            ValueError: If a required field is missing or a field has the wrong type
        """
        if not isinstance(data, Mapping):
            raise ValueError("Token response is not a JSON object")

        access_token = data.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise ValueError("Token response has no access_token")

        token_type = data.get("token_type")
        if not isinstance(token_type, str):
            raise ValueError("Token response has no token_type")

        expires_in = data.get("expires_in")
        if expires_in is not None:
            # Some providers send the lifetime as a numeric string
            if isinstance(expires_in, str) and expires_in.isdigit():
                expires_in = int(expires_in)
            if isinstance(expires_in, bool) or not isinstance(expires_in, int):
                raise ValueError("Token response expires_in is not an integer")

        refresh_token = data.get("refresh_token")
        if refresh_token is not None and not isinstance(refresh_token, str):
            raise ValueError("Token response refresh_token is not a string")

        scope = data.get("scope")
        if scope is not None and not isinstance(scope, str):
            raise ValueError("Token response scope is not a string")

        return cls(
            access_token=access_token,
            token_type=token_type,
            expires_in=expires_in,
            refresh_token=refresh_token,
            scope=scope,
            extras={k: v for k, v in data.items() if k not in _KNOWN_FIELDS},
        )

    @property
    def scopes(self) -> list[str]:
        """The granted scopes as a list (empty if the server sent none)."""
        return self.scope.split() if self.scope else []
