"""Two-factor domain types, verification outcomes and response schemas."""
import hashlib
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, Field

from .exceptions import ErrorKind

GENERIC_INVALID_CODE = "Invalid code"


class HashAlgorithm(str, Enum):
    """HMAC digests accepted in provisioning URIs."""
    SHA1 = "SHA1"
    SHA256 = "SHA256"
    SHA512 = "SHA512"

    @property
    def digest(self):
        return {
            HashAlgorithm.SHA1: hashlib.sha1,
            HashAlgorithm.SHA256: hashlib.sha256,
            HashAlgorithm.SHA512: hashlib.sha512,
        }[self]


class SecretState(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    REVOKED = "revoked"


class VerificationMethod(str, Enum):
    TOTP = "totp"
    BACKUP_CODE = "backup_code"


@dataclass(frozen=True)
class TwoFactorSecret:
    """Decrypted secret material plus its TOTP parameters."""
    id: str
    account_id: str
    secret_bytes: bytes
    algorithm: HashAlgorithm
    digits: int
    period: int
    issuer: str
    label: str
    state: SecretState
    created_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None

    def __repr__(self):
        # secret_bytes stays out of reprs and logs
        return (
            f"<TwoFactorSecret(id={self.id}, account_id={self.account_id}, "
            f"state={self.state.value}, algorithm={self.algorithm.value})>"
        )


@dataclass(frozen=True)
class ProvisioningFields:
    """Secret fields recovered from an ``otpauth://`` URI."""
    secret_bytes: bytes
    issuer: str
    label: str
    algorithm: HashAlgorithm = HashAlgorithm.SHA1
    digits: int = 6
    period: int = 30


# Verification outcomes

class RejectionReason(str, Enum):
    INVALID_CODE = "invalid_code"
    INVALID_CODE_FORMAT = "invalid_code_format"
    NO_ACTIVE_SECRET = "no_active_secret"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class Accepted:
    via: VerificationMethod
    confirmed_secret: bool = False

    @property
    def user_message(self) -> str:
        return "Code accepted"


@dataclass(frozen=True)
class Rejected:
    reason: RejectionReason
    error: Optional[ErrorKind] = None

    @property
    def user_message(self) -> str:
        # Wrong codes and used backup codes look the same to the end user
        if self.reason == RejectionReason.NO_ACTIVE_SECRET:
            return "Two-factor authentication is not set up"
        if self.reason == RejectionReason.UNAVAILABLE:
            return "Verification is temporarily unavailable. Please try again."
        return GENERIC_INVALID_CODE


@dataclass(frozen=True)
class LockedOut:
    until: datetime

    @property
    def user_message(self) -> str:
        return "Too many failed attempts. Please try again later."


VerificationOutcome = Union[Accepted, Rejected, LockedOut]


# Responses handed to the host application

class SetupResponse(BaseModel):
    """Response after two-factor setup initiation."""
    secret_key: str = Field(..., description="Base32 encoded secret for manual entry")
    provisioning_uri: str = Field(..., description="otpauth:// URI to render as a QR code")
    algorithm: HashAlgorithm = Field(HashAlgorithm.SHA1)
    digits: int = Field(6)
    period: int = Field(30)

    class Config:
        json_schema_extra = {
            "example": {
                "secret_key": "JBSWY3DPEHPK3PXP",
                "provisioning_uri": "otpauth://totp/Auth%20Dashboard:john%40company.com?secret=JBSWY3DPEHPK3PXP&issuer=Auth%20Dashboard&algorithm=SHA1&digits=6&period=30",
                "algorithm": "SHA1",
                "digits": 6,
                "period": 30,
            }
        }


class BackupCodesResponse(BaseModel):
    """Response with a freshly generated backup code set."""
    backup_codes: List[str] = Field(..., description="Plaintext codes, shown once")
    codes_count: int = Field(..., description="Number of backup codes generated")


class TwoFactorStatus(BaseModel):
    """Two-factor status of one account."""
    is_enabled: bool = Field(..., description="Whether an Active secret exists")
    setup_pending: bool = Field(..., description="Whether an unconfirmed secret exists")
    backup_codes_remaining: int = Field(..., description="Number of unused backup codes")
    failed_attempts: int = Field(0)
    locked_until: Optional[datetime] = Field(None)
    confirmed_at: Optional[datetime] = Field(None)


class CodePreview(BaseModel):
    """Current and next code for the live codes view."""
    current_code: str
    next_code: str
    remaining_seconds: int
    issuer: str
    label: str
