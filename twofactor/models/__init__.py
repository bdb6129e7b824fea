from .base import Base
from .two_factor import TwoFactorSecretRecord, BackupCodeRecord, LockoutStateRecord

__all__ = ["Base", "TwoFactorSecretRecord", "BackupCodeRecord", "LockoutStateRecord"]
