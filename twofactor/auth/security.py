"""Encryption of secret material and hashing of backup codes."""
import base64
import os
import re
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from dotenv import load_dotenv
from passlib.context import CryptContext

from .exceptions import InvalidSecretError

load_dotenv()

# Encryption key for secret material (in production, this should be stored securely)
ENCRYPTION_KEY = os.getenv("ENCRYPTION_KEY")
if not ENCRYPTION_KEY:
    # Generate a key if not provided (for development only)
    ENCRYPTION_KEY = base64.urlsafe_b64encode(os.urandom(32)).decode()

fernet = Fernet(
    ENCRYPTION_KEY.encode() if len(ENCRYPTION_KEY) == 44
    else base64.urlsafe_b64encode(ENCRYPTION_KEY.encode()[:32].ljust(32, b"\0"))
)

# Salted hashes for backup codes
backup_code_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

_SEPARATORS = re.compile(r"[\s\-]+")


def encrypt_secret(secret_bytes: bytes, cipher: Optional[Fernet] = None) -> str:
    """Encrypt raw key bytes into a Fernet token."""
    if not secret_bytes:
        raise InvalidSecretError("Refusing to store empty key material")
    return (cipher or fernet).encrypt(secret_bytes).decode()


def decrypt_secret(token: str, cipher: Optional[Fernet] = None) -> bytes:
    """Decrypt a Fernet token back into raw key bytes."""
    if not token:
        raise InvalidSecretError("Stored key material is empty")
    try:
        secret_bytes = (cipher or fernet).decrypt(token.encode())
    except InvalidToken as exc:
        raise InvalidSecretError("Stored key material could not be decrypted") from exc
    if not secret_bytes:
        raise InvalidSecretError("Stored key material is empty")
    return secret_bytes


def normalize_code(candidate: str) -> str:
    """Drop whitespace and dashes a user may type between groups."""
    return _SEPARATORS.sub("", candidate or "")


def normalize_backup_code(candidate: str) -> str:
    return normalize_code(candidate).upper()


def hash_backup_code(code: str) -> str:
    """Salted hash of the normalized code."""
    return backup_code_context.hash(normalize_backup_code(code))


def verify_backup_code(code: str, code_hash: str) -> bool:
    """Check a candidate against one stored hash."""
    try:
        return backup_code_context.verify(normalize_backup_code(code), code_hash)
    except ValueError:
        # Unrecognized or corrupt hash
        return False
