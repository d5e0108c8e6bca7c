"""OAuth2 Authorization Code Grant client for aiohttp applications.

codegrant redirects users to an OAuth2 provider, verifies the provider's
callback against an encrypted single-use state cookie, exchanges the
authorization code for a token and hands the token to application code.

Example usage:

    from aiohttp import web
    from codegrant import BasicAdapter, OAuthConfig, TokenResponse, setup, setup_from_config

    async def on_login(request: web.Request, token: TokenResponse) -> web.Response:
        # Look up the user with token.access_token, set a session cookie...
        raise web.HTTPFound("/")

    config = OAuthConfig.build(
        "GitHub",
        client_id="...",
        client_secret="...",
        redirect_uri="https://example.com/auth/github",
    )

    app = web.Application()
    setup(
        app,
        BasicAdapter(),
        on_login,
        config,
        callback_path="/auth/github",
        login=("/login/github", ["user:email"]),
    )

    # Or read the registration from a YAML/TOML file
    setup_from_config(app, BasicAdapter(), on_login, "github", "/auth/github",
                      config="oauth.toml")
"""

from codegrant.adapter import (
    Adapter,
    BasicAdapter,
    generate_state,
)
from codegrant.callback import (
    Callback,
    FunctionCallback,
    as_callback,
)
from codegrant.config import (
    OAuthConfig,
    Settings,
    clear_settings,
    get_settings,
    load_config_from_file,
)
from codegrant.cookies import (
    STATE_COOKIE_NAME,
    CookieStore,
    FernetCookieStore,
)
from codegrant.errors import (
    AdapterError,
    AuthorizationUriError,
    CodegrantError,
    ConfigError,
    TokenExchangeError,
    WiringError,
)
from codegrant.oauth2 import (
    OAuth2,
    get_oauth2,
    setup,
    setup_from_config,
)
from codegrant.providers import (
    KNOWN_PROVIDERS,
    Provider,
    custom,
    lookup,
)
from codegrant.token import TokenResponse

__version__ = "0.1.0"

__all__ = [
    # Orchestrator
    "OAuth2",
    "get_oauth2",
    "setup",
    "setup_from_config",
    # Adapter
    "Adapter",
    "BasicAdapter",
    "generate_state",
    # Callback
    "Callback",
    "FunctionCallback",
    "as_callback",
    # Config
    "OAuthConfig",
    "Settings",
    "clear_settings",
    "get_settings",
    "load_config_from_file",
    # Cookies
    "STATE_COOKIE_NAME",
    "CookieStore",
    "FernetCookieStore",
    # Errors
    "AdapterError",
    "AuthorizationUriError",
    "CodegrantError",
    "ConfigError",
    "TokenExchangeError",
    "WiringError",
    # Providers
    "KNOWN_PROVIDERS",
    "Provider",
    "custom",
    "lookup",
    # Token
    "TokenResponse",
]
