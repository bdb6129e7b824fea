"""Rendering and parsing of ``otpauth://totp`` provisioning URIs."""
import base64
import binascii
from urllib.parse import parse_qs, quote, unquote, urlsplit

from .exceptions import MalformedUriError
from .schemas import HashAlgorithm, ProvisioningFields
from .totp_engine import MIN_SECRET_BYTES

SCHEME = "otpauth"
OTP_TYPE = "totp"


def encode_secret(secret_bytes: bytes) -> str:
    """Uppercase, unpadded base32 as authenticator apps expect."""
    return base64.b32encode(secret_bytes).decode().rstrip("=")


def decode_secret(value: str) -> bytes:
    cleaned = value.replace(" ", "").upper()
    padding = (-len(cleaned)) % 8
    return base64.b32decode(cleaned + "=" * padding)


class ProvisioningUriBuilder:
    """Hands a secret to an authenticator app; the QR image is the host's job."""

    def build(self, secret) -> str:
        issuer = quote(secret.issuer, safe="")
        label = quote(secret.label, safe="")
        algorithm = HashAlgorithm(secret.algorithm).value
        return (
            f"{SCHEME}://{OTP_TYPE}/{issuer}:{label}"
            f"?secret={encode_secret(secret.secret_bytes)}"
            f"&issuer={issuer}"
            f"&algorithm={algorithm}"
            f"&digits={secret.digits}"
            f"&period={secret.period}"
        )

    def parse(self, uri: str) -> ProvisioningFields:
        try:
            parts = urlsplit(uri)
        except (TypeError, ValueError) as exc:
            raise MalformedUriError("URI cannot be split") from exc

        if parts.scheme.lower() != SCHEME:
            raise MalformedUriError(f"Unsupported scheme: {parts.scheme!r}")
        if parts.netloc.lower() != OTP_TYPE:
            raise MalformedUriError(f"Unsupported OTP type: {parts.netloc!r}")

        path = parts.path.lstrip("/")
        if not path:
            raise MalformedUriError("Missing account label")
        # Split before unquoting so an encoded ':' stays inside its field
        if ":" in path:
            raw_issuer, raw_label = path.split(":", 1)
            path_issuer = unquote(raw_issuer)
        else:
            raw_label, path_issuer = path, ""
        label = unquote(raw_label).strip()
        if not label:
            raise MalformedUriError("Missing account label")

        params = parse_qs(parts.query, keep_blank_values=True)

        def single(name):
            values = params.get(name)
            return values[0] if values else None

        raw_secret = single("secret")
        if not raw_secret:
            raise MalformedUriError("Missing secret parameter")
        try:
            secret_bytes = decode_secret(raw_secret)
        except (binascii.Error, ValueError) as exc:
            raise MalformedUriError("Secret is not valid base32") from exc
        if len(secret_bytes) < MIN_SECRET_BYTES:
            raise MalformedUriError("Secret is shorter than 80 bits")

        issuer = single("issuer") or path_issuer
        if path_issuer and issuer != path_issuer:
            raise MalformedUriError("Issuer parameter does not match label prefix")

        raw_algorithm = single("algorithm") or HashAlgorithm.SHA1.value
        try:
            algorithm = HashAlgorithm(raw_algorithm.upper())
        except ValueError as exc:
            raise MalformedUriError(f"Unsupported algorithm: {raw_algorithm!r}") from exc

        digits = self._parse_int(single("digits"), "digits", default=6)
        if not 6 <= digits <= 8:
            raise MalformedUriError("digits must be between 6 and 8")
        period = self._parse_int(single("period"), "period", default=30)
        if period <= 0:
            raise MalformedUriError("period must be positive")

        return ProvisioningFields(
            secret_bytes=secret_bytes,
            issuer=issuer,
            label=label,
            algorithm=algorithm,
            digits=digits,
            period=period,
        )

    @staticmethod
    def _parse_int(value, name: str, default: int) -> int:
        if value is None:
            return default
        if not (value.isascii() and value.isdigit()):
            raise MalformedUriError(f"{name} must be numeric")
        return int(value)


provisioning_uri_builder = ProvisioningUriBuilder()
