"""
tests/test_config.py -- Settings loading and the secret key policy.

Covers:
  - Production mode without a key refuses to start
  - Debug mode generates a key
  - Short keys rejected in both modes
  - Nested GATEHOUSE_* variables (throttling, users, cookie)
  - build_services() wires settings into the components
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from auth.factory import build_services
from auth.hashing import Sha256Hasher
from core.config import Settings, get_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("GATEHOUSE_DEBUG", "GATEHOUSE_SECRET_KEY", "GATEHOUSE_HASHER"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir("/")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSecretKeyPolicy:
    def test_production_requires_key(self) -> None:
        with pytest.raises(ValidationError, match="GATEHOUSE_SECRET_KEY is required"):
            Settings(debug=False)

    def test_debug_generates_key(self) -> None:
        settings = Settings(debug=True)
        assert len(settings.secret_key) >= 32

    def test_short_key_rejected(self, secret_key) -> None:
        with pytest.raises(ValidationError, match="at least 32"):
            Settings(debug=True, secret_key="short")

    def test_explicit_key_kept(self, secret_key) -> None:
        assert Settings(secret_key=secret_key).secret_key == secret_key


class TestEnvironment:
    def test_defaults(self, secret_key) -> None:
        settings = Settings(secret_key=secret_key)
        assert settings.hasher == "native"
        assert settings.users.login_attribute == "email"
        assert settings.throttling.enabled is True
        assert settings.throttling.attempt_limit == 5
        assert settings.throttling.suspension_time == 15
        assert settings.cookie.key == "gatehouse"

    def test_nested_variables(self, monkeypatch, secret_key) -> None:
        monkeypatch.setenv("GATEHOUSE_SECRET_KEY", secret_key)
        monkeypatch.setenv("GATEHOUSE_HASHER", "sha256")
        monkeypatch.setenv("GATEHOUSE_THROTTLING__ATTEMPT_LIMIT", "3")
        monkeypatch.setenv("GATEHOUSE_THROTTLING__ENABLED", "false")
        monkeypatch.setenv("GATEHOUSE_USERS__LOGIN_ATTRIBUTE", "username")
        settings = get_settings()
        assert settings.hasher == "sha256"
        assert settings.throttling.attempt_limit == 3
        assert settings.throttling.enabled is False
        assert settings.users.login_attribute == "username"

    def test_unknown_hasher_rejected(self, secret_key) -> None:
        with pytest.raises(ValidationError):
            Settings(secret_key=secret_key, hasher="md5")

    def test_zero_attempt_limit_rejected(self, secret_key) -> None:
        with pytest.raises(ValidationError):
            Settings(secret_key=secret_key, throttling={"attempt_limit": 0})

    def test_get_settings_is_cached(self, monkeypatch) -> None:
        monkeypatch.setenv("GATEHOUSE_DEBUG", "true")
        assert get_settings() is get_settings()


class TestBuildServices:
    def test_wiring(self, engine, secret_key) -> None:
        settings = Settings(
            secret_key=secret_key,
            hasher="sha256",
            users={"login_attribute": "username"},
            throttling={"attempt_limit": 3, "suspension_time": 5, "enabled": False},
            cookie={"key": "remember"},
        )
        services = build_services(settings, engine=engine)
        assert isinstance(services.hasher, Sha256Hasher)
        assert services.users.login_attribute == "username"
        assert services.config.login_attribute == "username"
        assert services.throttle.attempt_limit == 3
        assert services.throttle.enabled is False
        assert services.cookie_key == "remember"
        assert services.session().users is services.users
