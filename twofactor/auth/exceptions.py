"""Typed errors raised by the two-factor core."""
from datetime import datetime
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Precise failure kinds, retained in the activity log."""
    INVALID_SECRET = "invalid_secret"
    INVALID_TIMESTAMP = "invalid_timestamp"
    MALFORMED_URI = "malformed_uri"
    INVALID_CODE_FORMAT = "invalid_code_format"
    BACKUP_CODE_NOT_FOUND = "backup_code_not_found"
    BACKUP_CODE_ALREADY_USED = "backup_code_already_used"
    LOCKED_OUT = "locked_out"
    NO_ACTIVE_SECRET = "no_active_secret"


class TwoFactorError(Exception):
    """Base class for all two-factor errors."""
    kind: ErrorKind

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind.value)
        self.message = message or self.kind.value


class InvalidSecretError(TwoFactorError):
    """Key material is empty, too short or unreadable."""
    kind = ErrorKind.INVALID_SECRET


class InvalidTimestampError(TwoFactorError):
    """Timestamp precedes the Unix epoch."""
    kind = ErrorKind.INVALID_TIMESTAMP


class MalformedUriError(TwoFactorError):
    """Provisioning URI cannot be parsed."""
    kind = ErrorKind.MALFORMED_URI


class InvalidCodeFormatError(TwoFactorError):
    """Candidate is neither a TOTP code nor a backup code."""
    kind = ErrorKind.INVALID_CODE_FORMAT


class BackupCodeNotFoundError(TwoFactorError):
    kind = ErrorKind.BACKUP_CODE_NOT_FOUND


class BackupCodeAlreadyUsedError(TwoFactorError):
    kind = ErrorKind.BACKUP_CODE_ALREADY_USED


class AccountLockedError(TwoFactorError):
    """Attempts are suspended until ``until``."""
    kind = ErrorKind.LOCKED_OUT

    def __init__(self, until: datetime, message: str = ""):
        super().__init__(message or f"Account locked until {until.isoformat()}")
        self.until = until


class NoActiveSecretError(TwoFactorError):
    """Verification attempted before any secret was confirmed."""
    kind = ErrorKind.NO_ACTIVE_SECRET

    def __init__(self, account_id: Optional[str] = None, message: str = ""):
        super().__init__(message or "Two-factor authentication is not set up")
        self.account_id = account_id
