"""OAuth2 Authorization Code Grant orchestration for aiohttp applications.

OAuth2 ties an Adapter, a Callback and an OAuthConfig to two request
handlers:

- Login: asks the Adapter for an authorization URI and a state value,
  stores the state in an encrypted SameSite=Lax cookie and redirects the
  browser to the provider.
- Redirect (callback): checks the provider's ``state`` parameter against the
  cookie, consumes the cookie, has the Adapter exchange the ``code`` for a
  token and hands the token to the Callback, whose response is returned.

No record of pending logins is kept on the server. The only per-attempt
state is the cookie, so one OAuth2 instance can serve any number of
concurrent logins without locking.

Example usage:

    from aiohttp import web
    from codegrant import BasicAdapter, setup_from_config

    async def on_login(request, token):
        raise web.HTTPFound("/")

    app = web.Application()
    setup_from_config(
        app,
        BasicAdapter(),
        on_login,
        config_name="github",
        callback_path="/auth/github",
        login=("/login/github", ["user:email"]),
    )
"""

from __future__ import annotations

import secrets
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from aiohttp import web

from codegrant.adapter import Adapter
from codegrant.callback import Callback, CallbackFunction, as_callback
from codegrant.config import OAuthConfig, Settings, get_settings, load_config_from_file
from codegrant.cookies import (
    STATE_COOKIE_NAME,
    CookieStore,
    FernetCookieStore,
    install_cookie_signal,
)
from codegrant.errors import AdapterError, AuthorizationUriError, ConfigError, WiringError

if TYPE_CHECKING:
    from multidict import MultiMapping

logger = structlog.get_logger()

DEFAULT_NAME = "default"

# Registered orchestrators, keyed by registration name
OAUTH2_KEY = web.AppKey("codegrant_oauth2", dict)

# RFC 6749 §4.1.2.1 error codes; anything else is logged as "unknown"
AUTHORIZATION_ERRORS = frozenset(
    {
        "invalid_request",
        "unauthorized_client",
        "access_denied",
        "unsupported_response_type",
        "invalid_scope",
        "server_error",
        "temporarily_unavailable",
    }
)


class OAuth2:
    """Authorization Code Grant state machine.

    Instances are read-only after construction and shared by every request
    handler. The Adapter and Callback must tolerate concurrent calls.

    Args:
        adapter: Builds authorization URIs and performs token exchanges
        callback: Callback object or plain ``fn(request, token)`` function
        config: Client registration
        default_scopes: Scopes requested by the login route
        cookies: Store for the encrypted state cookie
        name: Registration name, used in log entries
    """

    def __init__(
        self,
        adapter: Adapter,
        callback: Callback | CallbackFunction,
        config: OAuthConfig,
        default_scopes: Iterable[str] = (),
        cookies: CookieStore | None = None,
        name: str = DEFAULT_NAME,
    ):
        self._adapter = adapter
        self._callback = as_callback(callback)
        self._config = config
        self._default_scopes = tuple(default_scopes)
        self._cookies = cookies if cookies is not None else FernetCookieStore.from_settings(get_settings())
        self._name = name

    @property
    def adapter(self) -> Adapter:
        return self._adapter

    @property
    def callback(self) -> Callback:
        return self._callback

    @property
    def config(self) -> OAuthConfig:
        return self._config

    @property
    def default_scopes(self) -> tuple[str, ...]:
        return self._default_scopes

    @property
    def name(self) -> str:
        return self._name

    def begin_login(self, request: web.Request, scopes: Sequence[str]) -> web.HTTPFound:
        """Prepare an authorization redirect for ``request``.

        Queues the state cookie and returns a redirect to the provider's
        authorization page. Raise the returned exception from a handler:

            raise oauth.begin_login(request, ["identify"])

        Raises:
            AuthorizationUriError: If the Adapter fails. This is a server-side
                problem, not something the user caused.
        """
        try:
            uri, state = self._adapter.authorization_uri(self._config, scopes)
        except AuthorizationUriError:
            raise
        except Exception as e:
            raise AuthorizationUriError(f"Adapter failed to build authorization URI: {e!r}") from e

        if not state:
            raise AuthorizationUriError("Adapter returned an empty state value")

        self._cookies.set(request, STATE_COOKIE_NAME, state)
        logger.debug("OAuth login redirect issued", oauth=self._name, scopes=list(scopes))
        return web.HTTPFound(uri)

    async def handle_callback(self, request: web.Request) -> web.StreamResponse:
        """Handle the provider's redirect back to ``redirect_uri``.

        Every failure before the Callback runs produces the same plain 400
        response; details only go to the log.
        """
        query = request.query

        # The provider refused or failed the authorization (RFC 6749 §4.1.2.1)
        if "error" in query:
            error = query.get("error", "")
            state = query.get("state")
            stored = self._cookies.get(request, STATE_COOKIE_NAME)
            if state is not None and _state_matches(stored, state):
                self._cookies.remove(request, STATE_COOKIE_NAME)
            return self._reject(
                "OAuth provider returned error",
                error=error if error in AUTHORIZATION_ERRORS else "unknown",
            )

        code = _single_param(query, "code")
        state = _single_param(query, "state")
        if not code or state is None:
            return self._reject("Missing or malformed code/state in OAuth callback")

        # Verify that the given state is the one stored in the cookie
        stored = self._cookies.get(request, STATE_COOKIE_NAME)
        if stored is None:
            return self._reject("OAuth state cookie missing")
        if not _state_matches(stored, state):
            return self._reject("OAuth state mismatch")

        # A match retires the state, whatever happens afterwards
        self._cookies.remove(request, STATE_COOKIE_NAME)

        try:
            token = await self._adapter.exchange_code(self._config, code)
        except Exception as e:
            logger.error(
                "Token exchange failed",
                oauth=self._name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return _bad_request()

        logger.info("OAuth token exchange successful", oauth=self._name, token_type=token.token_type)
        return await self._callback.callback(request, token)

    def _reject(self, event: str, **context: Any) -> web.Response:
        logger.warning(event, oauth=self._name, **context)
        return _bad_request()


def _bad_request() -> web.Response:
    return web.Response(text="Bad Request", status=400, content_type="text/plain")


def _internal_error() -> web.Response:
    return web.Response(text="Internal Server Error", status=500, content_type="text/plain")


def _single_param(query: MultiMapping[str], key: str) -> str | None:
    """Return the only value of ``key``, or None if missing or repeated."""
    values = query.getall(key, [])
    if len(values) != 1:
        return None
    return values[0]


def _state_matches(stored: str | None, given: str) -> bool:
    # Exact comparison, no normalization. An empty state is never issued.
    if not stored or not given:
        return False
    return secrets.compare_digest(stored.encode(), given.encode())


def get_oauth2(app: web.Application | Mapping[Any, Any], name: str = DEFAULT_NAME) -> OAuth2:
    """Return the OAuth2 instance registered on ``app`` under ``name``.

    Useful for custom login handlers that call ``begin_login`` themselves.

    Raises:
        WiringError: If nothing is registered under ``name``
    """
    registry = app.get(OAUTH2_KEY)
    oauth = registry.get(name) if registry else None
    if oauth is None:
        raise WiringError(f"No OAuth2 instance registered as '{name}'")
    return oauth


# Route handlers look the orchestrator up at request time so that a
# mis-wired application fails with a 500 rather than an unhandled error.


def redirect_handler(name: str = DEFAULT_NAME):
    """Build the handler for the provider's redirect (callback) route."""

    async def handle_redirect(request: web.Request) -> web.StreamResponse:
        try:
            oauth = get_oauth2(request.config_dict, name)
        except WiringError as e:
            logger.error("OAuth2 not configured for route", oauth=name, error=str(e))
            return _internal_error()
        return await oauth.handle_callback(request)

    return handle_redirect


def login_handler(name: str = DEFAULT_NAME):
    """Build the handler for the optional login route."""

    async def handle_login(request: web.Request) -> web.StreamResponse:
        try:
            oauth = get_oauth2(request.config_dict, name)
        except WiringError as e:
            logger.error("OAuth2 not configured for route", oauth=name, error=str(e))
            return _internal_error()

        try:
            redirect = oauth.begin_login(request, oauth.default_scopes)
        except AdapterError as e:
            logger.error(
                "Could not start OAuth login",
                oauth=name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return _internal_error()
        raise redirect

    return handle_login


def setup(
    app: web.Application,
    adapter: Adapter,
    callback: Callback | CallbackFunction,
    config: OAuthConfig,
    callback_path: str,
    login: tuple[str, Iterable[str]] | None = None,
    name: str = DEFAULT_NAME,
    cookies: CookieStore | None = None,
) -> OAuth2:
    """Register an OAuth2 instance and its routes on an aiohttp application.

    Mounts the redirect handler at ``callback_path``, and a login handler
    when ``login`` is given as ``(login_path, default_scopes)``.

    Args:
        app: The aiohttp Application to configure (before it starts)
        adapter: Adapter for the provider
        callback: Callback invoked with the token
        config: Client registration
        callback_path: Route for the provider's redirect; should match the
            path of ``config.redirect_uri``
        login: Optional ``(login_path, scopes)`` for a zero-argument login route
        name: Registration name, for hosts mounting several clients
        cookies: State cookie store (defaults to a FernetCookieStore built
            from the environment settings)

    Returns:
        The registered OAuth2 instance
    """
    registry = app.get(OAUTH2_KEY)
    if registry is None:
        registry = {}
        app[OAUTH2_KEY] = registry
    if name in registry:
        raise ValueError(f"An OAuth2 instance named '{name}' is already registered")

    default_scopes: Iterable[str] = ()
    login_path = None
    if login is not None:
        login_path, default_scopes = login

    oauth = OAuth2(
        adapter=adapter,
        callback=callback,
        config=config,
        default_scopes=default_scopes,
        cookies=cookies,
        name=name,
    )
    registry[name] = oauth

    app.router.add_get(callback_path, redirect_handler(name))
    if login_path is not None:
        app.router.add_get(login_path, login_handler(name))

    install_cookie_signal(app)

    logger.info(
        "OAuth2 mounted",
        oauth=name,
        callback_path=callback_path,
        login_path=login_path,
    )
    return oauth


def setup_from_config(
    app: web.Application,
    adapter: Adapter,
    callback: Callback | CallbackFunction,
    config_name: str,
    callback_path: str,
    login: tuple[str, Iterable[str]] | None = None,
    config: Mapping[str, Any] | str | Path | None = None,
    settings: Settings | None = None,
    cookies: CookieStore | None = None,
) -> OAuth2:
    """Like :func:`setup`, reading the registration ``oauth.<config_name>``.

    ``config`` is an already loaded mapping or a path to a YAML/TOML file;
    when omitted, the file named by CODEGRANT_CONFIG_PATH is used. The
    instance is registered under ``config_name``.

    Raises:
        ConfigError: If the configuration is missing or invalid. This is
            raised at setup time so the application never starts half-wired.
    """
    settings = settings or get_settings()

    try:
        if config is None:
            if not settings.config_path:
                raise ConfigError(
                    "config_path",
                    message="No OAuth configuration given and CODEGRANT_CONFIG_PATH is not set",
                )
            config = settings.config_path

        if isinstance(config, str | Path):
            config = load_config_from_file(config)

        oauth_config = OAuthConfig.from_config(config, config_name)
    except ConfigError as e:
        logger.error("Invalid configuration", oauth=config_name, error=str(e))
        raise

    return setup(
        app,
        adapter,
        callback,
        oauth_config,
        callback_path,
        login=login,
        name=config_name,
        cookies=cookies if cookies is not None else FernetCookieStore.from_settings(settings),
    )
