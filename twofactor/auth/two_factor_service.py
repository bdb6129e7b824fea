"""Two-factor service: setup, confirmation, verification and administration."""
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..config.settings import TwoFactorSettings
from ..core.clock import SystemClock, as_utc, remaining_seconds
from ..core.logging import get_logger
from ..services.activity_events import ActivityEventType
from ..services.keyed_lock import KeyedLock
from ..services.lockout_policy import Locked
from ..services.verifier import Verifier
from .exceptions import NoActiveSecretError
from .provisioning import ProvisioningUriBuilder, encode_secret
from .schemas import (
    BackupCodesResponse,
    CodePreview,
    SetupResponse,
    TwoFactorStatus,
    VerificationOutcome,
)

logger = get_logger(__name__)


class TwoFactorService:
    """Service for handling two-factor operations of one database session."""

    def __init__(
        self,
        db: Session,
        settings: Optional[TwoFactorSettings] = None,
        sink=None,
        locks: Optional[KeyedLock] = None,
        clock=None,
    ):
        self.db = db
        self.settings = settings or TwoFactorSettings()
        self.clock = clock or SystemClock()
        self.verifier = Verifier.from_session(db, self.settings, sink=sink, locks=locks, clock=self.clock)
        self.uri_builder = ProvisioningUriBuilder()

    @property
    def secret_store(self):
        return self.verifier.secret_store

    @property
    def backup_codes(self):
        return self.verifier.backup_codes

    @property
    def lockout(self):
        return self.verifier.lockout

    def begin_setup(self, account_id: str, label: str, issuer: Optional[str] = None) -> SetupResponse:
        """Provision a Pending secret and return what the authenticator app needs."""
        secret = self.secret_store.provision(
            account_id,
            issuer=issuer or self.settings.totp_issuer,
            label=label,
            period=self.settings.period,
            digits=self.settings.digits,
            algorithm=self.settings.algorithm,
            now=self.clock.now(),
        )
        return SetupResponse(
            secret_key=encode_secret(secret.secret_bytes),
            provisioning_uri=self.uri_builder.build(secret),
            algorithm=secret.algorithm,
            digits=secret.digits,
            period=secret.period,
        )

    def confirm_setup(self, account_id: str, code: str, now: Optional[datetime] = None) -> VerificationOutcome:
        """Confirm the Pending secret with a code from the authenticator app."""
        return self.verifier.confirm(account_id, code, now)

    def cancel_setup(self, account_id: str) -> bool:
        return self.secret_store.discard_pending(account_id)

    def verify(self, account_id: str, code: str, now: Optional[datetime] = None) -> VerificationOutcome:
        """Verify a TOTP code or backup code."""
        return self.verifier.verify(account_id, code, now)

    def regenerate_backup_codes(self, account_id: str) -> BackupCodesResponse:
        """Replace the account's backup codes; requires an Active secret."""
        if self.secret_store.get_active(account_id) is None:
            raise NoActiveSecretError(account_id, "Two-factor must be enabled to generate backup codes")
        codes = self.backup_codes.generate(
            account_id,
            count=self.settings.backup_codes_count,
            code_length=self.settings.backup_code_length,
            now=self.clock.now(),
        )
        return BackupCodesResponse(backup_codes=codes, codes_count=len(codes))

    def disable(self, account_id: str, now: Optional[datetime] = None) -> bool:
        """Revoke the Active secret, drop any Pending one and discard backup codes."""
        now = as_utc(now) or self.clock.now()
        with self.verifier.locks.hold(account_id):
            revoked = self.secret_store.revoke(account_id, now)
            self.backup_codes.discard_all(account_id)
        if revoked is None:
            return False
        self.verifier.emit_event(ActivityEventType.SECRET_REVOKED, account_id, now, secret_id=revoked.id, disabled=True)
        return True

    def reset_lockout(self, account_id: str) -> None:
        """Administrative reset of the failed-attempt counter."""
        with self.verifier.locks.hold(account_id):
            self.lockout.reset(account_id)

    def get_status(self, account_id: str, now: Optional[datetime] = None) -> TwoFactorStatus:
        now = as_utc(now) or self.clock.now()
        active, pending = self.secret_store.get_verifiable(account_id)
        lock_status = self.lockout.status(account_id, now)
        return TwoFactorStatus(
            is_enabled=active is not None,
            setup_pending=pending is not None,
            backup_codes_remaining=self.backup_codes.remaining(account_id),
            failed_attempts=(
                self.lockout.failed_attempts(account_id)
                if isinstance(lock_status, Locked) else lock_status.failed_attempts
            ),
            locked_until=lock_status.until if isinstance(lock_status, Locked) else None,
            confirmed_at=active.confirmed_at if active else None,
        )

    def preview_codes(self, account_id: str, now: Optional[datetime] = None) -> CodePreview:
        """Current and next code of the Active secret for the live codes view."""
        now = as_utc(now) or self.clock.now()
        active = self.secret_store.get_active(account_id)
        if active is None:
            raise NoActiveSecretError(account_id)
        current_code, next_code = self.verifier.engine.current_and_next(active, now)
        return CodePreview(
            current_code=current_code,
            next_code=next_code,
            remaining_seconds=remaining_seconds(now, active.period),
            issuer=active.issuer,
            label=active.label,
        )

