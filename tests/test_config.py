"""Tests for client registration config and environment settings."""

from __future__ import annotations

import dataclasses
import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from codegrant.config import (
    OAuthConfig,
    Settings,
    clear_settings,
    get_settings,
    load_config_from_file,
)
from codegrant.errors import ConfigError
from codegrant.providers import GitHub, Provider

TOML_CONFIG = """
[oauth.github]
provider = "GitHub"
client_id = "gh-id"
client_secret = "gh-secret"
redirect_uri = "https://example.com/auth/github"

[oauth.corp]
client_id = "corp-id"
client_secret = "corp-secret"
redirect_uri = "https://example.com/auth/corp"

[oauth.corp.provider]
auth_uri = "https://sso.corp.example/authorize"
token_uri = "https://sso.corp.example/token"
"""

YAML_CONFIG = """
oauth:
  github:
    provider: GitHub
    client_id: gh-id
    client_secret: gh-secret
    redirect_uri: https://example.com/auth/github
"""


def registration(**overrides):
    table = {
        "provider": "GitHub",
        "client_id": "gh-id",
        "client_secret": "gh-secret",
        "redirect_uri": "https://example.com/auth/github",
    }
    table.update(overrides)
    return {"oauth": {"github": table}}


class TestOAuthConfig:
    """Tests for OAuthConfig construction and validation."""

    def test_build_with_known_provider(self):
        config = OAuthConfig.build("GitHub", "id", "secret", "https://example.com/cb")
        assert config.provider is GitHub
        assert config.client_id == "id"
        assert config.client_secret == "secret"
        assert config.redirect_uri == "https://example.com/cb"

    def test_build_with_table(self):
        config = OAuthConfig.build(
            {"auth_uri": "https://a.example/auth", "token_uri": "https://a.example/token"},
            "id",
            "secret",
            "https://example.com/cb",
        )
        assert config.provider == Provider("https://a.example/auth", "https://a.example/token")

    def test_immutable(self):
        config = OAuthConfig.build("GitHub", "id", "secret", "https://example.com/cb")
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.client_id = "other"

    def test_secret_not_in_repr(self):
        config = OAuthConfig.build("GitHub", "id", "top-secret", "https://example.com/cb")
        assert "top-secret" not in repr(config)

    @pytest.mark.parametrize("field", ["client_id", "client_secret", "redirect_uri"])
    def test_empty_field_rejected(self, field):
        kwargs = {"client_id": "id", "client_secret": "secret", "redirect_uri": "https://e.com/cb"}
        kwargs[field] = ""
        with pytest.raises(ConfigError, match=field):
            OAuthConfig(provider=GitHub, **kwargs)

    def test_non_string_field_rejected(self):
        with pytest.raises(ConfigError, match="client_id") as exc_info:
            OAuthConfig(provider=GitHub, client_id=123, client_secret="s", redirect_uri="u")
        assert exc_info.value.expected == "string"
        assert exc_info.value.actual == "integer"

    def test_provider_with_empty_uri_rejected(self):
        with pytest.raises(ConfigError, match="token_uri"):
            OAuthConfig(
                provider=Provider("https://a.example/auth", ""),
                client_id="id",
                client_secret="secret",
                redirect_uri="https://example.com/cb",
            )


class TestFromConfig:
    """Tests for reading oauth.<name> tables."""

    def test_valid_registration(self):
        config = OAuthConfig.from_config(registration(), "github")
        assert config.provider is GitHub
        assert config.client_id == "gh-id"

    def test_idempotent_load(self):
        """Test loading the same configuration twice gives equal configs."""
        data = registration()
        first = OAuthConfig.from_config(data, "github")
        second = OAuthConfig.from_config(data, "github")
        assert first == second
        assert first is not second

    def test_missing_oauth_table(self):
        with pytest.raises(ConfigError, match="oauth") as exc_info:
            OAuthConfig.from_config({}, "github")
        assert exc_info.value.kind == "missing"

    def test_missing_registration(self):
        with pytest.raises(ConfigError, match="oauth.gitlab"):
            OAuthConfig.from_config(registration(), "gitlab")

    def test_registration_not_a_table(self):
        with pytest.raises(ConfigError, match="expected table, found string"):
            OAuthConfig.from_config({"oauth": {"github": "GitHub"}}, "github")

    @pytest.mark.parametrize("key", ["provider", "client_id", "client_secret", "redirect_uri"])
    def test_missing_key(self, key):
        data = registration()
        del data["oauth"]["github"][key]
        with pytest.raises(ConfigError, match=key) as exc_info:
            OAuthConfig.from_config(data, "github")
        assert exc_info.value.kind == "missing"

    def test_wrong_type(self):
        with pytest.raises(ConfigError, match="expected string, found integer") as exc_info:
            OAuthConfig.from_config(registration(client_secret=1234), "github")
        assert exc_info.value.key == "client_secret"
        assert exc_info.value.kind == "bad_type"

    def test_unknown_provider(self):
        with pytest.raises(ConfigError, match="known provider or table"):
            OAuthConfig.from_config(registration(provider="Myspace"), "github")


class TestLoadConfigFromFile:
    """Tests for YAML/TOML config files."""

    def test_toml(self, tmp_path):
        path = tmp_path / "oauth.toml"
        path.write_text(TOML_CONFIG)

        github = OAuthConfig.from_file(path, "github")
        corp = OAuthConfig.from_file(path, "corp")

        assert github.provider is GitHub
        assert corp.provider.auth_uri == "https://sso.corp.example/authorize"
        assert corp.provider.token_uri == "https://sso.corp.example/token"

    def test_yaml(self, tmp_path):
        path = tmp_path / "oauth.yaml"
        path.write_text(YAML_CONFIG)

        config = OAuthConfig.from_file(path, "github")
        assert config.client_secret == "gh-secret"

    def test_yaml_and_toml_agree(self, tmp_path):
        toml_path = tmp_path / "oauth.toml"
        toml_path.write_text(TOML_CONFIG)
        yaml_path = tmp_path / "oauth.yml"
        yaml_path.write_text(YAML_CONFIG)

        assert OAuthConfig.from_file(toml_path, "github") == OAuthConfig.from_file(yaml_path, "github")

    def test_empty_yaml(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config_from_file(path) == {}

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="Config file not found") as exc_info:
            load_config_from_file(tmp_path / "nope.toml")
        assert exc_info.value.key == "config_path"

    def test_unsupported_suffix(self, tmp_path):
        path = tmp_path / "oauth.ini"
        path.write_text("[oauth]")
        with pytest.raises(ConfigError, match="Unsupported config format"):
            load_config_from_file(path)

    def test_suffix_is_case_insensitive(self, tmp_path):
        path = tmp_path / "oauth.YAML"
        path.write_text(YAML_CONFIG)
        assert "oauth" in load_config_from_file(path)

    def test_invalid_toml(self, tmp_path):
        path = tmp_path / "oauth.toml"
        path.write_text("[oauth.github\n")
        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_config_from_file(path)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "oauth.yaml"
        path.write_text("oauth: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config_from_file(path)

    def test_top_level_not_a_table(self, tmp_path):
        path = tmp_path / "oauth.yaml"
        path.write_text("- github\n- google\n")
        with pytest.raises(ConfigError, match="found array") as exc_info:
            load_config_from_file(path)
        assert exc_info.value.kind == "bad_type"

    def test_bad_encoding(self, tmp_path):
        path = tmp_path / "oauth.toml"
        path.write_bytes(b"\xff\xfe\x00broken")
        with pytest.raises(ConfigError, match="Cannot read config file"):
            load_config_from_file(path)

    def test_from_file_missing(self, tmp_path):
        with pytest.raises(ConfigError, match="Config file not found"):
            OAuthConfig.from_file(tmp_path / "nope.yaml", "github")


class TestSettings:
    """Tests for CODEGRANT_* environment settings."""

    def test_default_values(self):
        settings = Settings()
        assert settings.config_path is None
        assert settings.cookie_secure is True
        assert settings.cookie_max_age is None
        assert settings.token_timeout == 30.0
        assert settings.log_level == "info"

    def test_env_override(self):
        with patch.dict(
            os.environ,
            {
                "CODEGRANT_COOKIE_SECURE": "false",
                "CODEGRANT_COOKIE_MAX_AGE": "600",
                "CODEGRANT_CONFIG_PATH": "/etc/codegrant/oauth.toml",
            },
        ):
            settings = Settings()
        assert settings.cookie_secure is False
        assert settings.cookie_max_age == 600
        assert settings.config_path == "/etc/codegrant/oauth.toml"

    def test_secret_not_in_repr(self):
        with patch.dict(os.environ, {"CODEGRANT_COOKIE_SECRET": "very-secret-key"}):
            settings = Settings()
        assert "very-secret-key" not in repr(settings)

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    def test_clear_settings(self):
        with patch.dict(os.environ, {"CODEGRANT_LOG_LEVEL": "debug"}):
            clear_settings()
            assert get_settings().log_level == "debug"

    def test_token_timeout_from_env(self):
        with patch.dict(os.environ, {"CODEGRANT_TOKEN_TIMEOUT": "2.5"}):
            assert Settings().token_timeout == 2.5

    def test_log_level_is_case_insensitive(self):
        with patch.dict(os.environ, {"CODEGRANT_LOG_LEVEL": "WARNING"}):
            assert Settings().log_level == "warning"

    def test_unknown_log_level_rejected(self):
        with patch.dict(os.environ, {"CODEGRANT_LOG_LEVEL": "verbose"}):
            with pytest.raises(ValidationError):
                Settings()
