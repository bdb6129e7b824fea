"""One-time recovery codes, stored as salted hashes."""
import secrets
import string
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from ..auth.exceptions import (
    BackupCodeAlreadyUsedError,
    BackupCodeNotFoundError,
)
from ..auth.security import hash_backup_code, normalize_backup_code, verify_backup_code
from ..core.clock import as_utc, utcnow
from ..core.logging import get_logger
from ..models.two_factor import BackupCodeRecord

logger = get_logger(__name__)

BACKUP_CODE_ALPHABET = string.ascii_uppercase + string.digits
BACKUP_CODES_COUNT = 8
BACKUP_CODE_LENGTH = 10


class BackupCodeVault:
    """Generates and consumes backup codes for accounts."""

    def __init__(self, db: Session, code_length: int = BACKUP_CODE_LENGTH):
        self.db = db
        self.code_length = code_length

    def generate(
        self,
        account_id: str,
        count: int = BACKUP_CODES_COUNT,
        code_length: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> List[str]:
        """Replace the account's codes with a fresh set.

        Only hashes are persisted; the returned plaintext cannot be
        retrieved again.
        """
        code_length = code_length or self.code_length
        if count < 1:
            raise ValueError("count must be at least 1")
        if code_length < 6:
            raise ValueError("code_length must be at least 6")
        now = as_utc(now) or utcnow()

        codes = []
        while len(codes) < count:
            code = "".join(secrets.choice(BACKUP_CODE_ALPHABET) for _ in range(code_length))
            if code not in codes:
                codes.append(code)
        hashes = [hash_backup_code(code) for code in codes]

        # Old set and new set swap in a single commit
        self.db.execute(delete(BackupCodeRecord).where(BackupCodeRecord.account_id == account_id))
        self.db.add_all(
            BackupCodeRecord(account_id=account_id, code_hash=code_hash, used=False, created_at=now)
            for code_hash in hashes
        )
        self.db.commit()

        logger.info(f"Generated {count} backup codes for account {account_id}")
        return codes

    def redeem(self, account_id: str, candidate: str, now: Optional[datetime] = None) -> None:
        """Flip a matching unused code to used, or raise.

        Raises BackupCodeNotFoundError or BackupCodeAlreadyUsedError. When two
        callers race on one code the conditional update lets exactly one win.
        """
        normalized = normalize_backup_code(candidate)
        if not normalized:
            raise BackupCodeNotFoundError("Empty backup code")
        now = as_utc(now) or utcnow()

        records = self.db.execute(
            select(BackupCodeRecord).where(BackupCodeRecord.account_id == account_id)
        ).scalars().all()
        match = next((r for r in records if verify_backup_code(normalized, r.code_hash)), None)
        if match is None:
            raise BackupCodeNotFoundError()
        if match.used:
            raise BackupCodeAlreadyUsedError()

        result = self.db.execute(
            update(BackupCodeRecord)
            .where(BackupCodeRecord.id == match.id, BackupCodeRecord.used.is_(False))
            .values(used=True, used_at=now)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if result.rowcount != 1:
            raise BackupCodeAlreadyUsedError()
        logger.info(f"Backup code consumed for account {account_id}")

    def consume(self, account_id: str, candidate: str, now: Optional[datetime] = None) -> bool:
        """Boolean form of :meth:`redeem`; the failure kind is only logged."""
        try:
            self.redeem(account_id, candidate, now)
        except (BackupCodeNotFoundError, BackupCodeAlreadyUsedError) as exc:
            logger.warning(f"Backup code rejected for account {account_id}: {exc.kind.value}")
            return False
        return True

    def remaining(self, account_id: str) -> int:
        return self.db.execute(
            select(func.count(BackupCodeRecord.id)).where(
                BackupCodeRecord.account_id == account_id,
                BackupCodeRecord.used.is_(False),
            )
        ).scalar() or 0

    def discard_all(self, account_id: str) -> int:
        result = self.db.execute(delete(BackupCodeRecord).where(BackupCodeRecord.account_id == account_id))
        self.db.commit()
        return result.rowcount

    def matches_format(self, candidate: str) -> bool:
        """Whether ``candidate`` could be a backup code at all."""
        normalized = normalize_backup_code(candidate)
        return len(normalized) == self.code_length and all(
            ch in BACKUP_CODE_ALPHABET for ch in normalized
        )
