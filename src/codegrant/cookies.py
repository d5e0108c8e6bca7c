"""Encrypted cookies for the CSRF state value.

Cookie values are sealed with Fernet (AES-128-CBC + HMAC-SHA256 from the
``cryptography`` package), so the browser can neither read nor forge them.

Handlers do not touch the response directly. Cookie mutations are queued on
the request and written onto whatever response is finally prepared, whether
the handler returned it or an ``aiohttp.web.HTTPException`` was raised. This
is what lets a consumed state cookie be deleted even when the rest of the
request fails.
"""

from __future__ import annotations

from dataclasses import dataclass
from http.cookies import SimpleCookie
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import structlog
from aiohttp import hdrs, web
from cryptography.fernet import Fernet, InvalidToken

if TYPE_CHECKING:
    from codegrant.config import Settings

logger = structlog.get_logger()

STATE_COOKIE_NAME = "codegrant_oauth2_state"

# Request-scoped list of pending cookie mutations
PENDING_COOKIES_KEY = "codegrant_pending_cookies"

_SIGNAL_INSTALLED = web.AppKey("codegrant_cookie_signal", bool)

_EPOCH = "Thu, 01 Jan 1970 00:00:00 GMT"


@dataclass(frozen=True)
class CookieMutation:
    """A cookie write or deletion waiting for the response."""

    name: str
    value: str | None
    path: str = "/"
    secure: bool = True
    httponly: bool = True
    samesite: str = "Lax"

    @property
    def is_delete(self) -> bool:
        return self.value is None

    def header_value(self) -> str:
        """Render the mutation as a Set-Cookie header value."""
        cookie: SimpleCookie = SimpleCookie()
        cookie[self.name] = "" if self.is_delete else self.value
        morsel = cookie[self.name]
        morsel["path"] = self.path
        if self.is_delete:
            morsel["max-age"] = 0
            morsel["expires"] = _EPOCH
        else:
            morsel["secure"] = self.secure
            morsel["httponly"] = self.httponly
            morsel["samesite"] = self.samesite
        return morsel.OutputString()


@runtime_checkable
class CookieStore(Protocol):
    """Confidential, tamper-proof cookie storage bound to a request."""

    def get(self, request: web.Request, name: str) -> str | None:
        """Return the decrypted cookie value, or None if absent or invalid."""
        ...

    def set(self, request: web.Request, name: str, value: str) -> None:
        """Queue an encrypted cookie for the response to this request."""
        ...

    def remove(self, request: web.Request, name: str) -> None:
        """Queue the cookie's deletion for the response to this request."""
        ...


class FernetCookieStore:
    """CookieStore sealing values with a Fernet key.

    Args:
        key: URL-safe base64 Fernet key. A random key is generated if omitted,
            which only works for a single process and does not survive restarts.
        secure: Set the Secure attribute (HTTPS only). Disable for local
            plain-HTTP development.
        max_age: Reject cookies sealed more than this many seconds ago.
        path: Cookie path.
    """

    def __init__(
        self,
        key: str | bytes | None = None,
        secure: bool = True,
        max_age: int | None = None,
        path: str = "/",
    ):
        if key is None:
            logger.warning(
                "No cookie secret configured, generating an ephemeral key",
                hint="set CODEGRANT_COOKIE_SECRET for multi-process deployments",
            )
            key = Fernet.generate_key()
        self._fernet = Fernet(key)
        self._secure = secure
        self._max_age = max_age
        self._path = path

    @classmethod
    def from_settings(cls, settings: Settings) -> FernetCookieStore:
        return cls(
            key=settings.cookie_secret,
            secure=settings.cookie_secure,
            max_age=settings.cookie_max_age,
        )

    def encode(self, value: str) -> str:
        return self._fernet.encrypt(value.encode()).decode()

    def decode(self, token: str) -> str | None:
        try:
            return self._fernet.decrypt(token.encode(), ttl=self._max_age).decode()
        except (InvalidToken, UnicodeError):
            return None

    def get(self, request: web.Request, name: str) -> str | None:
        raw = request.cookies.get(name)
        if not raw:
            return None

        value = self.decode(raw)
        if value is None:
            logger.warning("Rejected undecryptable cookie", cookie=name)
        return value

    def set(self, request: web.Request, name: str, value: str) -> None:
        queue_cookie(
            request,
            CookieMutation(name=name, value=self.encode(value), path=self._path, secure=self._secure),
        )

    def remove(self, request: web.Request, name: str) -> None:
        queue_cookie(request, CookieMutation(name=name, value=None, path=self._path))


def queue_cookie(request: web.Request, mutation: CookieMutation) -> None:
    """Add a cookie mutation to be applied when the response is prepared."""
    request.setdefault(PENDING_COOKIES_KEY, []).append(mutation)


def apply_cookie_mutations(request: web.Request, response: web.StreamResponse) -> None:
    """Write queued cookie mutations onto ``response`` as Set-Cookie headers, in queue order.

    Runs from ``on_response_prepare``, after aiohttp has already serialized
    ``response.cookies``, so the headers are added directly.
    """
    for mutation in request.pop(PENDING_COOKIES_KEY, []):
        response.headers.add(hdrs.SET_COOKIE, mutation.header_value())


async def _on_response_prepare(request: web.Request, response: web.StreamResponse) -> None:
    apply_cookie_mutations(request, response)


def install_cookie_signal(app: web.Application) -> None:
    """Hook queued cookie mutations into ``app``'s response preparation.

    Safe to call more than once; the signal handler is added only once.
    """
    if app.get(_SIGNAL_INSTALLED):
        return
    app.on_response_prepare.append(_on_response_prepare)
    app[_SIGNAL_INSTALLED] = True
