"""
Single accept/reject decision for a presented second factor.

Order of checks for one attempt, all under the account's lock:
lockout -> TOTP against Active and Pending secrets -> backup code ->
lockout bookkeeping -> activity event. Always returns an outcome.
Confirmation of a new secret runs the same bookkeeping against the
Pending secret alone.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..auth.exceptions import (
    BackupCodeAlreadyUsedError,
    BackupCodeNotFoundError,
    ErrorKind,
    TwoFactorError,
)
from ..auth.schemas import (
    Accepted,
    LockedOut,
    Rejected,
    RejectionReason,
    SecretState,
    TwoFactorSecret,
    VerificationMethod,
    VerificationOutcome,
)
from ..auth.security import normalize_code
from ..auth.totp_engine import DEFAULT_WINDOW, TotpEngine, totp_engine
from ..config.settings import TwoFactorSettings
from ..core.clock import SystemClock, as_utc
from ..core.logging import get_logger
from .activity_events import ActivityEventType, LoggingActivitySink, make_event
from .backup_code_vault import BackupCodeVault
from .keyed_lock import KeyedLock, account_locks
from .lockout_policy import Locked, LockoutPolicy, LockoutRule
from .secret_store import SecretStore

logger = get_logger(__name__)


class Verifier:
    """Composes SecretStore, BackupCodeVault and LockoutPolicy."""

    def __init__(
        self,
        secret_store: SecretStore,
        backup_codes: BackupCodeVault,
        lockout: LockoutPolicy,
        sink=None,
        window: int = DEFAULT_WINDOW,
        engine: Optional[TotpEngine] = None,
        locks: Optional[KeyedLock] = None,
        clock=None,
    ):
        self.secret_store = secret_store
        self.backup_codes = backup_codes
        self.lockout = lockout
        self.sink = sink or LoggingActivitySink()
        self.window = window
        self.engine = engine or totp_engine
        self.locks = locks or account_locks
        self.clock = clock or SystemClock()

    @classmethod
    def from_session(
        cls,
        db: Session,
        settings: Optional[TwoFactorSettings] = None,
        sink=None,
        locks: Optional[KeyedLock] = None,
        clock=None,
    ) -> "Verifier":
        settings = settings or TwoFactorSettings()
        return cls(
            secret_store=SecretStore(db, secret_bytes=settings.secret_bytes),
            backup_codes=BackupCodeVault(db, code_length=settings.backup_code_length),
            lockout=LockoutPolicy(
                db,
                LockoutRule(
                    max_attempts=settings.max_login_attempts,
                    lockout_duration=settings.lockout_duration,
                ),
            ),
            sink=sink,
            window=settings.verification_window,
            locks=locks,
            clock=clock,
        )

    def verify(self, account_id: str, presented_code: str, now: Optional[datetime] = None) -> VerificationOutcome:
        """Decide whether ``presented_code`` is a valid second factor right now."""
        now = as_utc(now) or self.clock.now()
        with self.locks.hold(account_id):
            return self._guarded(account_id, now, self._verify, presented_code or "")

    def confirm(self, account_id: str, presented_code: str, now: Optional[datetime] = None) -> VerificationOutcome:
        """Promote the Pending secret if ``presented_code`` matches it.

        Only the Pending secret's TOTP is consulted; Active codes and backup
        codes never confirm a setup. ``Accepted`` always has
        ``confirmed_secret=True``.
        """
        now = as_utc(now) or self.clock.now()
        with self.locks.hold(account_id):
            return self._guarded(account_id, now, self._confirm, presented_code or "")

    def _guarded(self, account_id: str, now: datetime, attempt, presented_code: str) -> VerificationOutcome:
        try:
            return attempt(account_id, presented_code, now)
        except TwoFactorError as exc:
            # Unreadable stored secret and similar; never escapes as an exception
            self.secret_store.db.rollback()
            logger.error(f"Verification error for account {account_id}: {exc.kind.value}")
            self.emit_event(ActivityEventType.TOTP_FAILED, account_id, now, error=exc.kind.value)
            return Rejected(RejectionReason.INVALID_CODE, exc.kind)
        except SQLAlchemyError as e:
            # Storage unavailable; the attempt is not counted
            self.secret_store.db.rollback()
            logger.error(f"Storage error while verifying account {account_id}: {type(e).__name__}")
            return Rejected(RejectionReason.UNAVAILABLE)

    def _confirm(self, account_id: str, presented_code: str, now: datetime) -> VerificationOutcome:
        status = self.lockout.check(account_id, now)
        if isinstance(status, Locked):
            return LockedOut(status.until)

        pending = self.secret_store.get_pending(account_id)
        if pending is None:
            logger.warning(f"Confirmation attempted without a pending secret for account {account_id}")
            self.emit_event(
                ActivityEventType.TOTP_FAILED, account_id, now,
                error=ErrorKind.NO_ACTIVE_SECRET.value,
            )
            return Rejected(RejectionReason.NO_ACTIVE_SECRET, ErrorKind.NO_ACTIVE_SECRET)

        code = normalize_code(presented_code)
        if not self._fits_totp(code, pending):
            return self._reject(
                account_id, now,
                Rejected(RejectionReason.INVALID_CODE_FORMAT, ErrorKind.INVALID_CODE_FORMAT),
            )
        if self.engine.verify(pending, code, now, self.window):
            return self._accept(account_id, now, VerificationMethod.TOTP, pending)
        return self._reject(account_id, now, Rejected(RejectionReason.INVALID_CODE))

    def _verify(self, account_id: str, presented_code: str, now: datetime) -> VerificationOutcome:
        status = self.lockout.check(account_id, now)
        if isinstance(status, Locked):
            return LockedOut(status.until)

        active, pending = self.secret_store.get_verifiable(account_id)
        if active is None and pending is None:
            logger.warning(f"Verification attempted without a secret for account {account_id}")
            self.emit_event(
                ActivityEventType.TOTP_FAILED, account_id, now,
                error=ErrorKind.NO_ACTIVE_SECRET.value,
            )
            return Rejected(RejectionReason.NO_ACTIVE_SECRET, ErrorKind.NO_ACTIVE_SECRET)

        code = normalize_code(presented_code)
        candidates = [s for s in (active, pending) if s is not None and self._fits_totp(code, s)]
        fits_backup = self.backup_codes.matches_format(code)
        if not candidates and not fits_backup:
            return self._reject(
                account_id, now,
                Rejected(RejectionReason.INVALID_CODE_FORMAT, ErrorKind.INVALID_CODE_FORMAT),
            )

        for secret in candidates:
            if self.engine.verify(secret, code, now, self.window):
                return self._accept(account_id, now, VerificationMethod.TOTP, secret)

        error = None
        if fits_backup:
            try:
                self.backup_codes.redeem(account_id, code, now)
            except (BackupCodeNotFoundError, BackupCodeAlreadyUsedError) as exc:
                error = exc.kind
            else:
                return self._accept(account_id, now, VerificationMethod.BACKUP_CODE, None)

        return self._reject(account_id, now, Rejected(RejectionReason.INVALID_CODE, error))

    @staticmethod
    def _fits_totp(code: str, secret: TwoFactorSecret) -> bool:
        return code.isascii() and code.isdigit() and len(code) == secret.digits

    def _accept(
        self,
        account_id: str,
        now: datetime,
        via: VerificationMethod,
        secret: Optional[TwoFactorSecret],
    ) -> Accepted:
        self.lockout.record_success(account_id, now)

        confirmed = False
        if secret is not None and secret.state == SecretState.PENDING:
            confirmed_secret, revoked = self.secret_store.promote(account_id, secret.id, now)
            confirmed = True
            self.emit_event(ActivityEventType.SECRET_CONFIRMED, account_id, now, secret_id=confirmed_secret.id)
            if revoked is not None:
                self.emit_event(
                    ActivityEventType.SECRET_REVOKED, account_id, now,
                    secret_id=revoked.id, replaced_by=confirmed_secret.id,
                )

        if via == VerificationMethod.BACKUP_CODE:
            self.emit_event(
                ActivityEventType.BACKUP_CODE_USED, account_id, now,
                remaining=self.backup_codes.remaining(account_id),
            )
        else:
            self.emit_event(ActivityEventType.TOTP_SUCCESS, account_id, now, secret_id=secret.id)
        logger.info(f"Second factor accepted for account {account_id} via {via.value}")
        return Accepted(via=via, confirmed_secret=confirmed)

    def _reject(self, account_id: str, now: datetime, rejected: Rejected) -> VerificationOutcome:
        status = self.lockout.record_failure(account_id, now)
        failed_attempts = status.failed_attempts if not isinstance(status, Locked) else None
        self.emit_event(
            ActivityEventType.TOTP_FAILED, account_id, now,
            reason=rejected.reason.value,
            error=rejected.error.value if rejected.error else None,
            failed_attempts=failed_attempts,
        )
        logger.warning(
            f"Second factor rejected for account {account_id}: "
            f"{(rejected.error or rejected.reason).value}"
        )
        if isinstance(status, Locked):
            self.emit_event(ActivityEventType.ACCOUNT_LOCKED, account_id, now, until=status.until.isoformat())
            return LockedOut(status.until)
        return rejected

    def emit_event(self, event_type: ActivityEventType, account_id: str, now: datetime, **detail) -> None:
        try:
            self.sink.emit(make_event(event_type, account_id, now, **detail))
        except Exception as e:
            # The activity log is a collaborator; its failure must not change the outcome
            logger.error(f"Failed to emit {event_type.value} for account {account_id}: {str(e)}")
