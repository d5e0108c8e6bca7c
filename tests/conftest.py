"""Shared fixtures for codegrant tests."""

from __future__ import annotations

import pytest
from cryptography.fernet import Fernet

from codegrant.config import OAuthConfig, clear_settings
from codegrant.cookies import FernetCookieStore
from codegrant.providers import custom


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Make every test read CODEGRANT_* variables afresh."""
    clear_settings()
    yield
    clear_settings()


@pytest.fixture
def provider():
    return custom(
        "https://provider.example.com/oauth/authorize",
        "https://provider.example.com/oauth/token",
    )


@pytest.fixture
def oauth_config(provider):
    return OAuthConfig(
        provider=provider,
        client_id="test-client-id",
        client_secret="test-client-secret",
        redirect_uri="http://127.0.0.1/auth/callback",
    )


@pytest.fixture
def cookie_store():
    # Test clients talk plain HTTP, so the cookie must not be Secure
    return FernetCookieStore(key=Fernet.generate_key(), secure=False)
