"""Provider-facing half of the Authorization Code Grant.

An Adapter knows how to build a provider's authorization URI and how to
perform the token exchange. The orchestrator only ever talks to this
interface, so HTTP client choice and provider quirks stay out of the core.

BasicAdapter follows RFC 6749 strictly and uses authlib on top of httpx.
Providers that deviate (credentials in the body, odd error shapes) are
handled by configuring it, or by supplying a different Adapter.
"""

from __future__ import annotations

import contextlib
import secrets
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import httpx
import structlog
from authlib.integrations.base_client import OAuthError
from authlib.integrations.httpx_client import AsyncOAuth2Client
from authlib.oauth2.rfc6749.parameters import prepare_grant_uri

from codegrant.config import get_settings
from codegrant.errors import AuthorizationUriError, TokenExchangeError
from codegrant.token import TokenResponse

if TYPE_CHECKING:
    from codegrant.config import OAuthConfig, Settings

logger = structlog.get_logger()

STATE_BYTES = 32
TOKEN_ENDPOINT_AUTH_METHODS = ("client_secret_basic", "client_secret_post")


@runtime_checkable
class Adapter(Protocol):
    """Generates authorization URIs and exchanges codes for tokens.

    Implementations are shared by every in-flight login, so they must not
    keep unsynchronized mutable state between calls.
    """

    def authorization_uri(
        self, config: OAuthConfig, scopes: Sequence[str]
    ) -> tuple[str, str]:
        """Return ``(uri, state)`` as described by RFC 6749 §4.1.1.

        ``state`` must be cryptographically unpredictable and is the same
        value embedded in ``uri``.
        """
        ...

    async def exchange_code(self, config: OAuthConfig, code: str) -> TokenResponse:
        """Exchange an authorization code for a token (RFC 6749 §4.1.3)."""
        ...


def generate_state() -> str:
    """Generate a fresh CSRF state value."""
    return secrets.token_urlsafe(STATE_BYTES)


class BasicAdapter:
    """RFC 6749 compliant adapter built on authlib's httpx client.

    Args:
        token_endpoint_auth_method: How client credentials are sent to the
            token endpoint, "client_secret_basic" (HTTP Basic, the RFC
            default) or "client_secret_post" (form body)
        timeout: Timeout in seconds for the token endpoint request. Defaults to
            CODEGRANT_TOKEN_TIMEOUT
        **client_kwargs: Extra arguments for the underlying httpx.AsyncClient
            (proxies, transport, verify...)
    """

    def __init__(
        self,
        token_endpoint_auth_method: str = "client_secret_basic",
        timeout: float | None = None,
        **client_kwargs: Any,
    ):
        if token_endpoint_auth_method not in TOKEN_ENDPOINT_AUTH_METHODS:
            raise ValueError(
                f"Unsupported token_endpoint_auth_method: {token_endpoint_auth_method}. "
                f"Supported: {', '.join(TOKEN_ENDPOINT_AUTH_METHODS)}"
            )
        self._auth_method = token_endpoint_auth_method
        self._timeout = timeout if timeout is not None else get_settings().token_timeout
        self._client_kwargs = client_kwargs

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> BasicAdapter:
        """Build an adapter using the timeout from ``settings``."""
        return cls(timeout=settings.token_timeout, **kwargs)

    @property
    def timeout(self) -> float:
        return self._timeout

    def authorization_uri(
        self, config: OAuthConfig, scopes: Sequence[str]
    ) -> tuple[str, str]:
        state = generate_state()
        try:
            uri = prepare_grant_uri(
                config.provider.auth_uri,
                client_id=config.client_id,
                response_type="code",
                redirect_uri=config.redirect_uri,
                scope=list(scopes),
                state=state,
            )
        except (TypeError, ValueError) as e:
            raise AuthorizationUriError(f"Could not build authorization URI: {e}") from e
        return uri, state

    async def exchange_code(self, config: OAuthConfig, code: str) -> TokenResponse:
        try:
            async with AsyncOAuth2Client(
                client_id=config.client_id,
                client_secret=config.client_secret,
                token_endpoint_auth_method=self._auth_method,
                redirect_uri=config.redirect_uri,
                timeout=self._timeout,
                **self._client_kwargs,
            ) as client:
                client.register_compliance_hook("access_token_response", _check_status)
                token = await client.fetch_token(
                    url=config.provider.token_uri,
                    grant_type="authorization_code",
                    code=code,
                )
        except TokenExchangeError:
            raise
        except httpx.HTTPError as e:
            raise TokenExchangeError(f"Token endpoint request failed: {e!r}") from e
        except OAuthError as e:
            # RFC 6749 §5.2 error reply
            raise TokenExchangeError(f"Token endpoint returned error: {e.error}") from e
        except (TypeError, ValueError) as e:
            raise TokenExchangeError(f"Unparseable token response: {e}") from e

        try:
            return TokenResponse.from_dict(dict(token))
        except (TypeError, ValueError) as e:
            raise TokenExchangeError(f"Invalid token response: {e}") from e


def _check_status(response: httpx.Response) -> httpx.Response:
    """Reject non-2xx token endpoint replies, keeping the RFC error code if any."""
    if response.is_success:
        return response

    error = None
    with contextlib.suppress(ValueError):
        body = response.json()
        if isinstance(body, dict):
            error = body.get("error")

    logger.debug(
        "Token endpoint returned non-success status",
        status=response.status_code,
        error=error,
    )
    message = f"Token endpoint returned HTTP {response.status_code}"
    if error:
        message += f" ({error})"
    raise TokenExchangeError(message, status=response.status_code)
