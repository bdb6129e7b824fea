"""Tests for otpauth:// provisioning URIs."""
import pytest
import pyotp

from twofactor.auth.exceptions import MalformedUriError
from twofactor.auth.provisioning import ProvisioningUriBuilder, decode_secret, encode_secret
from twofactor.auth.schemas import HashAlgorithm, ProvisioningFields

SECRET_BYTES = b"12345678901234567890"
SECRET_B32 = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"


@pytest.fixture
def builder():
    return ProvisioningUriBuilder()


@pytest.fixture
def fields():
    return ProvisioningFields(
        secret_bytes=SECRET_BYTES,
        issuer="Auth Dashboard",
        label="john.doe@company.com",
        algorithm=HashAlgorithm.SHA256,
        digits=8,
        period=60,
    )


class TestBuild:

    def test_build_format(self, builder, fields):
        assert builder.build(fields) == (
            "otpauth://totp/Auth%20Dashboard:john.doe%40company.com"
            f"?secret={SECRET_B32}&issuer=Auth%20Dashboard"
            "&algorithm=SHA256&digits=8&period=60"
        )

    def test_secret_is_unpadded_uppercase_base32(self):
        encoded = encode_secret(b"Hello!\xde\xad\xbe\xef\x01")
        assert "=" not in encoded
        assert encoded == encoded.upper()
        assert decode_secret(encoded) == b"Hello!\xde\xad\xbe\xef\x01"

    def test_round_trip(self, builder, fields):
        parsed = builder.parse(builder.build(fields))
        assert parsed == fields

    def test_round_trip_with_colon_in_issuer(self, builder):
        original = ProvisioningFields(
            secret_bytes=SECRET_BYTES, issuer="Acme: Corp", label="ops@acme.io"
        )
        parsed = builder.parse(builder.build(original))
        assert parsed.issuer == "Acme: Corp"
        assert parsed.label == "ops@acme.io"

    def test_pyotp_reads_built_uri(self, builder, fields):
        totp = pyotp.parse_uri(builder.build(fields))
        assert totp.secret == SECRET_B32
        assert totp.digits == 8
        assert totp.interval == 60


class TestParse:

    def test_parse_pyotp_uri_uses_defaults(self, builder):
        uri = pyotp.TOTP("JBSWY3DPEHPK3PXP").provisioning_uri(
            name="alice@google.com", issuer_name="Example"
        )
        parsed = builder.parse(uri)
        assert parsed.issuer == "Example"
        assert parsed.label == "alice@google.com"
        assert parsed.secret_bytes == decode_secret("JBSWY3DPEHPK3PXP")
        assert parsed.algorithm == HashAlgorithm.SHA1
        assert parsed.digits == 6
        assert parsed.period == 30

    def test_lowercase_algorithm_accepted(self, builder):
        parsed = builder.parse(
            f"otpauth://totp/Example:bob?secret={SECRET_B32}&issuer=Example&algorithm=sha512"
        )
        assert parsed.algorithm == HashAlgorithm.SHA512

    def test_issuer_from_query_only(self, builder):
        parsed = builder.parse(f"otpauth://totp/bob?secret={SECRET_B32}&issuer=Example")
        assert parsed.issuer == "Example"
        assert parsed.label == "bob"

    @pytest.mark.parametrize("uri", [
        "otpauth://totp/Example:bob?issuer=Example",
        "otpauth://totp/Example:bob?secret=&issuer=Example",
        "otpauth://totp/Example:bob?secret=not-base32!&issuer=Example",
        "otpauth://totp/Example:bob?secret=JBSWY3DP&issuer=Example",
        f"otpauth://totp/Example:bob?secret={SECRET_B32}&digits=six",
        f"otpauth://totp/Example:bob?secret={SECRET_B32}&digits=9",
        f"otpauth://totp/Example:bob?secret={SECRET_B32}&period=thirty",
        f"otpauth://totp/Example:bob?secret={SECRET_B32}&period=0",
        f"otpauth://totp/Example:bob?secret={SECRET_B32}&algorithm=MD5",
        f"otpauth://hotp/Example:bob?secret={SECRET_B32}",
        f"https://totp/Example:bob?secret={SECRET_B32}",
        f"otpauth://totp/?secret={SECRET_B32}",
        f"otpauth://totp/Example:bob?secret={SECRET_B32}&issuer=Other",
    ])
    def test_malformed(self, builder, uri):
        with pytest.raises(MalformedUriError):
            builder.parse(uri)
