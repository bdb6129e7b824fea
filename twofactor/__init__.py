"""Two-factor authentication core: TOTP, backup codes and lockout policy."""

__version__ = "0.1.0"

from .auth.two_factor_service import TwoFactorService
from .auth.totp_engine import TotpEngine, totp_engine
from .auth.provisioning import ProvisioningUriBuilder
from .auth.schemas import Accepted, Rejected, LockedOut, VerificationMethod, HashAlgorithm
from .config.settings import TwoFactorSettings
from .services.verifier import Verifier

__all__ = [
    "TwoFactorService",
    "TwoFactorSettings",
    "Verifier",
    "TotpEngine",
    "totp_engine",
    "ProvisioningUriBuilder",
    "Accepted",
    "Rejected",
    "LockedOut",
    "VerificationMethod",
    "HashAlgorithm",
]
