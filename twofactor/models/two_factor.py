"""Two-factor database models."""
from sqlalchemy import Column, String, DateTime, Boolean, Integer, Index
from sqlalchemy.sql import func
from .base import Base
import uuid


class TwoFactorSecretRecord(Base):
    """Per-account TOTP secret and its Pending/Active/Revoked lifecycle."""
    __tablename__ = "two_factor_secrets"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    account_id = Column(String, nullable=False, index=True)
    secret_encrypted = Column(String, nullable=False)  # Fernet token of the raw key bytes
    algorithm = Column(String, nullable=False, default="SHA1")
    digits = Column(Integer, nullable=False, default=6)
    period = Column(Integer, nullable=False, default=30)
    issuer = Column(String, nullable=False)
    label = Column(String, nullable=False)
    state = Column(String, nullable=False, default="pending")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    revoked_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_two_factor_secrets_account_state", "account_id", "state"),
    )

    def __repr__(self):
        return f"<TwoFactorSecretRecord(id={self.id}, account_id={self.account_id}, state={self.state})>"


class BackupCodeRecord(Base):
    """One-time recovery code, stored as a salted hash only."""
    __tablename__ = "backup_codes"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    account_id = Column(String, nullable=False, index=True)
    code_hash = Column(String, nullable=False)
    used = Column(Boolean, nullable=False, default=False)
    used_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<BackupCodeRecord(id={self.id}, account_id={self.account_id}, used={self.used})>"


class LockoutStateRecord(Base):
    """Failed-attempt counter and lockout deadline for one account."""
    __tablename__ = "lockout_states"

    account_id = Column(String, primary_key=True)
    failed_attempts = Column(Integer, nullable=False, default=0)
    locked_until = Column(DateTime(timezone=True), nullable=True)
    last_attempt_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return (
            f"<LockoutStateRecord(account_id={self.account_id}, "
            f"failed_attempts={self.failed_attempts}, locked_until={self.locked_until})>"
        )
