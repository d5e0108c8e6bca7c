"""Exception types raised by codegrant.

Configuration problems surface at startup and are never a per-request
condition. Adapter failures are converted into fixed-shape HTTP responses by
the orchestrator, so their messages only ever reach the operator's logs.
"""

from __future__ import annotations


class CodegrantError(Exception):
    """Base class for all codegrant errors."""


class ConfigError(CodegrantError):
    """A configuration value is missing or has the wrong type.

    Attributes:
        key: The configuration key that failed validation.
        kind: ``"missing"`` or ``"bad_type"``.
        expected: Human readable description of the expected type.
        actual: Name of the type that was found instead.
    """

    def __init__(
        self,
        key: str,
        expected: str | None = None,
        actual: str | None = None,
        message: str | None = None,
    ):
        self.key = key
        self.expected = expected
        self.actual = actual
        self.kind = "missing" if expected is None else "bad_type"

        if message is None:
            if self.kind == "missing":
                message = f"Missing configuration key: {key}"
            else:
                message = f"Invalid type for configuration key '{key}': expected {expected}"
                if actual:
                    message += f", found {actual}"
        super().__init__(message)

    @classmethod
    def bad_type(cls, key: str, expected: str, value: object) -> ConfigError:
        return cls(key, expected=expected, actual=type_name(value))


class AdapterError(CodegrantError):
    """Base class for failures inside an Adapter."""


class AuthorizationUriError(AdapterError):
    """The adapter could not build an authorization URI."""


class TokenExchangeError(AdapterError):
    """The token endpoint request failed or returned an unusable reply.

    Attributes:
        status: HTTP status of the token endpoint reply, if one was received.
    """

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class WiringError(CodegrantError):
    """No orchestrator is registered for a mounted route."""


def type_name(value: object) -> str:
    """Describe a configuration value's type the way config files name them."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, str):
        return "string"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "float"
    if isinstance(value, dict):
        return "table"
    if isinstance(value, list | tuple):
        return "array"
    return type(value).__name__
