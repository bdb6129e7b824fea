"""
Per-account TOTP secret storage with a two-phase activation lifecycle.

A secret is created Pending, becomes Active only after a correct code is
presented for it, and the previously Active secret is Revoked in the same
commit. Rotation never overwrites a record in place.
"""
import secrets as random_source
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..auth.exceptions import InvalidSecretError
from ..auth.schemas import HashAlgorithm, SecretState, TwoFactorSecret
from ..auth.security import decrypt_secret, encrypt_secret
from ..auth.totp_engine import MIN_SECRET_BYTES
from ..core.clock import as_utc, utcnow
from ..core.logging import get_logger
from ..models.two_factor import TwoFactorSecretRecord

logger = get_logger(__name__)

DEFAULT_SECRET_BYTES = 20  # 160 bits


class SecretStore:
    """Owns secret material for every account."""

    def __init__(self, db: Session, secret_bytes: int = DEFAULT_SECRET_BYTES, cipher=None):
        if secret_bytes < MIN_SECRET_BYTES:
            raise InvalidSecretError(f"Secrets must be at least {MIN_SECRET_BYTES * 8} bits")
        self.db = db
        self.secret_bytes = secret_bytes
        self.cipher = cipher

    def provision(
        self,
        account_id: str,
        issuer: str,
        label: str,
        period: int = 30,
        digits: int = 6,
        algorithm: HashAlgorithm = HashAlgorithm.SHA1,
        now: Optional[datetime] = None,
    ) -> TwoFactorSecret:
        """Create a new Pending secret for ``account_id``.

        An existing Active secret is left untouched (rotation in progress).
        An earlier unconfirmed Pending secret is discarded so at most one
        Pending record exists per account.
        """
        if not 6 <= digits <= 8:
            raise ValueError("digits must be between 6 and 8")
        if period <= 0:
            raise ValueError("period must be positive")
        if not issuer or not label:
            raise ValueError("issuer and label are required")
        algorithm = HashAlgorithm(algorithm)
        now = as_utc(now) or utcnow()

        stale = self._records(account_id, SecretState.PENDING)
        for record in stale:
            self.db.delete(record)

        record = TwoFactorSecretRecord(
            account_id=account_id,
            secret_encrypted=encrypt_secret(random_source.token_bytes(self.secret_bytes), self.cipher),
            algorithm=algorithm.value,
            digits=digits,
            period=period,
            issuer=issuer,
            label=label,
            state=SecretState.PENDING.value,
            created_at=now,
        )
        self.db.add(record)
        self.db.commit()

        logger.info(
            f"Provisioned pending secret {record.id} for account {account_id}"
            + (f" (replaced {len(stale)} unconfirmed)" if stale else "")
        )
        return self._to_domain(record)

    def get_active(self, account_id: str) -> Optional[TwoFactorSecret]:
        record = self._first(account_id, SecretState.ACTIVE)
        return self._to_domain(record) if record else None

    def get_pending(self, account_id: str) -> Optional[TwoFactorSecret]:
        record = self._first(account_id, SecretState.PENDING)
        return self._to_domain(record) if record else None

    def get_verifiable(self, account_id: str) -> Tuple[Optional[TwoFactorSecret], Optional[TwoFactorSecret]]:
        """(active, pending) secrets; Revoked ones are never returned."""
        return self.get_active(account_id), self.get_pending(account_id)

    def promote(
        self, account_id: str, secret_id: str, now: Optional[datetime] = None
    ) -> Tuple[TwoFactorSecret, Optional[TwoFactorSecret]]:
        """Pending -> Active and previous Active -> Revoked in one commit.

        Returns ``(confirmed, revoked)``. The caller must already have
        verified a code against the Pending secret.
        """
        now = as_utc(now) or utcnow()
        pending = self.db.execute(
            select(TwoFactorSecretRecord).where(
                TwoFactorSecretRecord.id == secret_id,
                TwoFactorSecretRecord.account_id == account_id,
            )
        ).scalar_one_or_none()
        if pending is None or pending.state != SecretState.PENDING.value:
            raise InvalidSecretError(f"Secret {secret_id} is not pending for account {account_id}")

        revoked = None
        for active in self._records(account_id, SecretState.ACTIVE):
            active.state = SecretState.REVOKED.value
            active.revoked_at = now
            revoked = active

        pending.state = SecretState.ACTIVE.value
        pending.confirmed_at = now
        self.db.commit()

        logger.info(
            f"Confirmed secret {pending.id} for account {account_id}"
            + (f", revoked {revoked.id}" if revoked else "")
        )
        return self._to_domain(pending), (self._to_domain(revoked) if revoked else None)

    def discard_pending(self, account_id: str) -> bool:
        """Drop an unconfirmed secret; nothing else changes."""
        records = self._records(account_id, SecretState.PENDING)
        if not records:
            return False
        for record in records:
            self.db.delete(record)
        self.db.commit()
        logger.info(f"Discarded pending secret for account {account_id}")
        return True

    def revoke(self, account_id: str, now: Optional[datetime] = None) -> Optional[TwoFactorSecret]:
        """Revoke the Active secret and drop any Pending one."""
        now = as_utc(now) or utcnow()
        revoked = None
        for record in self._records(account_id, SecretState.ACTIVE):
            record.state = SecretState.REVOKED.value
            record.revoked_at = now
            revoked = record
        for record in self._records(account_id, SecretState.PENDING):
            self.db.delete(record)
        self.db.commit()
        if revoked:
            logger.info(f"Revoked secret {revoked.id} for account {account_id}")
        return self._to_domain(revoked) if revoked else None

    def history(self, account_id: str) -> List[TwoFactorSecret]:
        """Every retained record for the account, oldest first (audit only)."""
        records = self.db.execute(
            select(TwoFactorSecretRecord)
            .where(TwoFactorSecretRecord.account_id == account_id)
            .order_by(TwoFactorSecretRecord.created_at)
        ).scalars().all()
        return [self._to_domain(record) for record in records]

    def _records(self, account_id: str, state: SecretState) -> List[TwoFactorSecretRecord]:
        return list(
            self.db.execute(
                select(TwoFactorSecretRecord).where(
                    TwoFactorSecretRecord.account_id == account_id,
                    TwoFactorSecretRecord.state == state.value,
                )
            ).scalars().all()
        )

    def _first(self, account_id: str, state: SecretState) -> Optional[TwoFactorSecretRecord]:
        records = self._records(account_id, state)
        return records[0] if records else None

    def _to_domain(self, record: TwoFactorSecretRecord) -> TwoFactorSecret:
        return TwoFactorSecret(
            id=record.id,
            account_id=record.account_id,
            secret_bytes=decrypt_secret(record.secret_encrypted, self.cipher),
            algorithm=HashAlgorithm(record.algorithm),
            digits=record.digits,
            period=record.period,
            issuer=record.issuer,
            label=record.label,
            state=SecretState(record.state),
            created_at=as_utc(record.created_at),
            confirmed_at=as_utc(record.confirmed_at),
            revoked_at=as_utc(record.revoked_at),
        )
