"""Two-factor settings consumed from the settings collaborator or the environment."""
import os
from datetime import timedelta
from typing import Any, Dict, Mapping

from dotenv import load_dotenv
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from ..auth.schemas import HashAlgorithm

load_dotenv()

DEFAULT_ISSUER = "Auth Dashboard"

# Environment variable -> settings field
_ENV_FIELDS = {
    "TOTP_PERIOD": "period",
    "TOTP_DIGITS": "digits",
    "TOTP_ALGORITHM": "algorithm",
    "TOTP_ISSUER": "totp_issuer",
    "TOTP_WINDOW": "verification_window",
    "TOTP_SECRET_BYTES": "secret_bytes",
    "MAX_LOGIN_ATTEMPTS": "max_login_attempts",
    "LOCKOUT_DURATION_MINUTES": "lockout_duration_minutes",
    "BACKUP_CODES_COUNT": "backup_codes_count",
    "BACKUP_CODE_LENGTH": "backup_code_length",
}


class TwoFactorSettings(BaseModel):
    """Recognized two-factor options.

    Accepts both snake_case field names and the camelCase keys used by the
    dashboard settings page (``maxLoginAttempts``, ``totpIssuer`` ...).
    """
    model_config = ConfigDict(extra="ignore", frozen=True)

    period: int = Field(30, gt=0, description="TOTP time step in seconds")
    digits: int = Field(6, description="Number of digits in a TOTP code")
    algorithm: HashAlgorithm = Field(HashAlgorithm.SHA1, description="HMAC digest")
    verification_window: int = Field(
        1,
        ge=0,
        validation_alias=AliasChoices("verification_window", "verificationWindow", "window"),
        description="Adjacent periods accepted on either side of now",
    )
    secret_bytes: int = Field(
        20,
        ge=10,
        validation_alias=AliasChoices("secret_bytes", "secretBytes"),
        description="Length of generated secrets (20 bytes = 160 bits)",
    )
    max_login_attempts: int = Field(
        5,
        ge=1,
        validation_alias=AliasChoices("max_login_attempts", "maxLoginAttempts", "loginAttempts"),
    )
    lockout_duration_minutes: int = Field(
        15,
        ge=1,
        validation_alias=AliasChoices(
            "lockout_duration_minutes", "lockoutDurationMinutes", "lockoutDuration"
        ),
    )
    backup_codes_count: int = Field(
        8,
        ge=1,
        validation_alias=AliasChoices("backup_codes_count", "backupCodesCount"),
    )
    backup_code_length: int = Field(
        10,
        ge=6,
        le=32,
        validation_alias=AliasChoices("backup_code_length", "backupCodeLength"),
    )
    totp_issuer: str = Field(
        DEFAULT_ISSUER,
        min_length=1,
        validation_alias=AliasChoices("totp_issuer", "totpIssuer", "issuer"),
    )

    @field_validator("digits")
    @classmethod
    def validate_digits(cls, v):
        if not 6 <= v <= 8:
            raise ValueError("digits must be between 6 and 8")
        return v

    @field_validator("algorithm", mode="before")
    @classmethod
    def normalize_algorithm(cls, v):
        if isinstance(v, str):
            return v.upper()
        return v

    @property
    def lockout_duration(self) -> timedelta:
        return timedelta(minutes=self.lockout_duration_minutes)

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "TwoFactorSettings":
        """Build settings from a settings-collaborator payload."""
        return cls.model_validate(dict(values))

    @classmethod
    def from_env(cls) -> "TwoFactorSettings":
        """Build settings from environment variables, falling back to defaults."""
        values: Dict[str, Any] = {}
        for env_name, field_name in _ENV_FIELDS.items():
            raw = os.getenv(env_name)
            if raw is not None and raw != "":
                values[field_name] = raw
        return cls.model_validate(values)
