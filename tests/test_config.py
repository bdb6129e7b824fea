"""Tests for two-factor settings."""
import pytest
from datetime import timedelta
from pydantic import ValidationError

from twofactor.auth.schemas import HashAlgorithm
from twofactor.config.settings import TwoFactorSettings

ENV_NAMES = [
    "TOTP_PERIOD", "TOTP_DIGITS", "TOTP_ALGORITHM", "TOTP_ISSUER", "TOTP_WINDOW",
    "TOTP_SECRET_BYTES", "MAX_LOGIN_ATTEMPTS", "LOCKOUT_DURATION_MINUTES",
    "BACKUP_CODES_COUNT", "BACKUP_CODE_LENGTH",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults():
    settings = TwoFactorSettings()
    assert settings.period == 30
    assert settings.digits == 6
    assert settings.algorithm == HashAlgorithm.SHA1
    assert settings.max_login_attempts == 5
    assert settings.lockout_duration == timedelta(minutes=15)
    assert settings.backup_codes_count == 8
    assert settings.totp_issuer == "Auth Dashboard"


def test_dashboard_keys():
    settings = TwoFactorSettings.from_mapping({
        "maxLoginAttempts": 3,
        "lockoutDurationMinutes": 30,
        "totpIssuer": "Acme",
        "theme": "dark",
    })
    assert settings.max_login_attempts == 3
    assert settings.lockout_duration == timedelta(minutes=30)
    assert settings.totp_issuer == "Acme"


def test_lowercase_algorithm():
    assert TwoFactorSettings(algorithm="sha256").algorithm == HashAlgorithm.SHA256


@pytest.mark.parametrize("values", [
    {"digits": 5},
    {"digits": 9},
    {"algorithm": "MD5"},
    {"period": 0},
    {"max_login_attempts": 0},
    {"secret_bytes": 8},
])
def test_invalid_values(values):
    with pytest.raises(ValidationError):
        TwoFactorSettings(**values)


def test_from_env(clean_env):
    clean_env.setenv("TOTP_DIGITS", "8")
    clean_env.setenv("TOTP_ALGORITHM", "sha512")
    clean_env.setenv("MAX_LOGIN_ATTEMPTS", "10")
    clean_env.setenv("TOTP_ISSUER", "Staging")

    settings = TwoFactorSettings.from_env()

    assert settings.digits == 8
    assert settings.algorithm == HashAlgorithm.SHA512
    assert settings.max_login_attempts == 10
    assert settings.totp_issuer == "Staging"
    assert settings.period == 30


def test_from_env_defaults(clean_env):
    assert TwoFactorSettings.from_env() == TwoFactorSettings()


def test_settings_are_frozen():
    settings = TwoFactorSettings()
    with pytest.raises(ValidationError):
        settings.digits = 8
