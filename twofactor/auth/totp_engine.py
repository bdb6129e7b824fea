"""
TOTP (RFC 6238) code generation and verification.

Thin wrapper over pyotp that validates key material and timestamps,
supports SHA1/SHA256/SHA512 digests and compares every candidate
window in constant time. Stateless and safe to call from any thread.
"""
import base64
from datetime import datetime, timezone
from typing import Tuple

import pyotp
from pyotp.utils import strings_equal

from ..core.clock import Timestamp, to_unix_seconds
from .exceptions import InvalidSecretError
from .schemas import HashAlgorithm

# 80 bits
MIN_SECRET_BYTES = 10
DEFAULT_WINDOW = 1


class TotpEngine:
    """Pure TOTP code generator/verifier.

    ``secret`` is any object exposing ``secret_bytes``, ``algorithm``,
    ``digits`` and ``period`` (a TwoFactorSecret or ProvisioningFields).
    """

    def _totp(self, secret) -> pyotp.TOTP:
        key = secret.secret_bytes
        if not key:
            raise InvalidSecretError("Secret is empty")
        if len(key) < MIN_SECRET_BYTES:
            raise InvalidSecretError(
                f"Secret has {len(key) * 8} bits, at least {MIN_SECRET_BYTES * 8} required"
            )
        algorithm = HashAlgorithm(secret.algorithm)
        return pyotp.TOTP(
            base64.b32encode(key).decode(),
            digits=secret.digits,
            digest=algorithm.digest,
            interval=secret.period,
        )

    def generate_code(self, secret, timestamp: Timestamp) -> str:
        """Code for the time step containing ``timestamp``."""
        totp = self._totp(secret)
        unix_seconds = to_unix_seconds(timestamp)
        # Aware datetime keeps pyotp on the calendar.timegm path
        return totp.at(datetime.fromtimestamp(unix_seconds, tz=timezone.utc))

    def verify(self, secret, candidate: str, timestamp: Timestamp, window: int = DEFAULT_WINDOW) -> bool:
        """True if ``candidate`` matches any step within ``window`` periods of ``timestamp``."""
        if window < 0:
            raise ValueError("window must be >= 0")
        unix_seconds = to_unix_seconds(timestamp)
        if not isinstance(candidate, str):
            return False

        matched = False
        # No early exit: every window costs the same
        for offset in range(-window, window + 1):
            step_time = unix_seconds + offset * secret.period
            if step_time < 0:
                continue
            if strings_equal(candidate, self.generate_code(secret, step_time)):
                matched = True
        return matched

    def current_and_next(self, secret, timestamp: Timestamp) -> Tuple[str, str]:
        """Codes for the current step and the one after it."""
        unix_seconds = to_unix_seconds(timestamp)
        return (
            self.generate_code(secret, unix_seconds),
            self.generate_code(secret, unix_seconds + secret.period),
        )


totp_engine = TotpEngine()
