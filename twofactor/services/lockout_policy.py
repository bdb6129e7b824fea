"""
Failed-attempt tracking and timed lockout for two-factor verification.

Two states per account: ``Unlocked(failed_attempts)`` and ``Locked(until)``.
Crossing ``max_attempts`` failures locks the account for
``lockout_duration``; an expired lock is cleared lazily on the next attempt.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.clock import as_utc, utcnow
from ..core.logging import get_logger
from ..models.two_factor import LockoutStateRecord

logger = get_logger(__name__)

# Fallbacks when the settings collaborator supplies nothing
FALLBACK_MAX_ATTEMPTS = 5
FALLBACK_LOCKOUT_DURATION = timedelta(minutes=15)


@dataclass(frozen=True)
class LockoutRule:
    """Lockout configuration"""
    max_attempts: int = FALLBACK_MAX_ATTEMPTS
    lockout_duration: timedelta = FALLBACK_LOCKOUT_DURATION


@dataclass(frozen=True)
class Unlocked:
    failed_attempts: int = 0


@dataclass(frozen=True)
class Locked:
    until: datetime


LockStatus = Union[Unlocked, Locked]


class LockoutPolicy:
    """Lockout state machine backed by the ``lockout_states`` table."""

    def __init__(self, db: Session, rule: Optional[LockoutRule] = None):
        self.db = db
        self.rule = rule or LockoutRule()
        if self.rule.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.rule.lockout_duration <= timedelta(0):
            raise ValueError("lockout_duration must be positive")

    def status(self, account_id: str, now: Optional[datetime] = None) -> LockStatus:
        """Current state without side effects; an expired lock reads as Unlocked(0)."""
        now = as_utc(now) or utcnow()
        record = self._get(account_id)
        if record is None:
            return Unlocked(0)
        locked_until = as_utc(record.locked_until)
        if locked_until is not None:
            if now < locked_until:
                return Locked(locked_until)
            return Unlocked(0)
        return Unlocked(record.failed_attempts)

    def check(self, account_id: str, now: Optional[datetime] = None) -> LockStatus:
        """State to apply to an incoming attempt.

        An expired lock is cleared here (Locked -> Unlocked(0)) before the
        attempt is processed. An unexpired lock is returned unchanged and the
        attempt is not counted.
        """
        now = as_utc(now) or utcnow()
        record = self._get(account_id)
        if record is None:
            return Unlocked(0)

        locked_until = as_utc(record.locked_until)
        if locked_until is not None:
            if now < locked_until:
                logger.warning(f"Attempt for locked account {account_id} (until {locked_until.isoformat()})")
                return Locked(locked_until)
            record.failed_attempts = 0
            record.locked_until = None
            self.db.commit()
            logger.info(f"Lockout expired for account {account_id}")
        return Unlocked(record.failed_attempts)

    def record_failure(self, account_id: str, now: Optional[datetime] = None) -> LockStatus:
        """Count one failed verification; lock once the threshold is reached."""
        now = as_utc(now) or utcnow()
        record = self._get_or_create(account_id)

        locked_until = as_utc(record.locked_until)
        if locked_until is not None and now < locked_until:
            # Attempts during a lock are never counted twice
            return Locked(locked_until)
        if locked_until is not None:
            record.failed_attempts = 0
            record.locked_until = None

        record.failed_attempts = (record.failed_attempts or 0) + 1
        record.last_attempt_at = now
        status: LockStatus = Unlocked(record.failed_attempts)
        if record.failed_attempts >= self.rule.max_attempts:
            record.locked_until = now + self.rule.lockout_duration
            status = Locked(record.locked_until)
            logger.warning(
                f"Account {account_id} locked after {record.failed_attempts} failed attempts "
                f"until {record.locked_until.isoformat()}"
            )
        self.db.commit()
        return status

    def record_success(self, account_id: str, now: Optional[datetime] = None) -> LockStatus:
        now = as_utc(now) or utcnow()
        record = self._get(account_id)
        if record is not None:
            record.failed_attempts = 0
            record.locked_until = None
            record.last_attempt_at = now
            self.db.commit()
        return Unlocked(0)

    def failed_attempts(self, account_id: str) -> int:
        """Stored failure count, including the attempts behind an active lock."""
        record = self._get(account_id)
        return record.failed_attempts if record is not None else 0

    def reset(self, account_id: str) -> None:
        """Administrative reset to Unlocked(0)."""
        record = self._get(account_id)
        if record is None:
            return
        record.failed_attempts = 0
        record.locked_until = None
        self.db.commit()
        logger.info(f"Lockout reset for account {account_id}")

    def _get(self, account_id: str) -> Optional[LockoutStateRecord]:
        return self.db.execute(
            select(LockoutStateRecord).where(LockoutStateRecord.account_id == account_id)
        ).scalar_one_or_none()

    def _get_or_create(self, account_id: str) -> LockoutStateRecord:
        record = self._get(account_id)
        if record is None:
            record = LockoutStateRecord(account_id=account_id, failed_attempts=0)
            self.db.add(record)
        return record
