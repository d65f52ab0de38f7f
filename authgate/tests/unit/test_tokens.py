"""
Tests for bearer tokens
"""
import jwt
import pytest

from authgate.core.auth.errors import InternalFailure, InvalidCredential, MalformedCredential, MissingCredential
from authgate.core.auth.tokens import INVALID_TOKEN_MESSAGE, TokenCodec, extract_bearer_token

SECRET = "unit-test-jwt-secret-0123456789abcdef"


@pytest.fixture
def codec(clock):
    return TokenCodec(secret=SECRET, default_ttl_seconds=900, clock=clock)


class TestIssueAndVerify:

    def test_verify_returns_subject_while_unexpired(self, codec, clock):
        token = codec.issue("admin")

        claims = codec.verify(token)
        assert claims.subject == "admin"
        assert claims.expires_at - claims.issued_at == 900

        clock.advance(899)
        assert codec.verify(token).subject == "admin"

    def test_rejected_at_expiry(self, codec, clock):
        token = codec.issue("admin")
        clock.advance(900)

        with pytest.raises(InvalidCredential) as exc_info:
            codec.verify(token)
        assert exc_info.value.reason == "expired"

    def test_fractional_issue_time_never_extends_lifetime(self, codec, clock):
        clock.now = 1_700_000_000.5
        token = codec.issue("admin")

        assert codec.verify(token).expires_at == 1_700_000_900
        clock.advance(899)
        assert codec.verify(token).subject == "admin"

        # 899.5 seconds after issue, not 900
        clock.advance(0.5)
        with pytest.raises(InvalidCredential):
            codec.verify(token)

    def test_zero_ttl_at_fractional_time_is_expired(self, codec, clock):
        clock.now = 1_700_000_000.5
        with pytest.raises(InvalidCredential):
            codec.verify(codec.issue("admin", ttl_seconds=0))

    def test_zero_ttl_is_immediately_expired(self, codec):
        token = codec.issue("admin", ttl_seconds=0)
        with pytest.raises(InvalidCredential) as exc_info:
            codec.verify(token)
        assert exc_info.value.reason == "expired"

    def test_token_is_three_part_hs256(self, codec, clock):
        token = codec.issue("admin")

        assert token.count(".") == 2
        assert jwt.get_unverified_header(token)["alg"] == "HS256"
        payload = jwt.decode(token, options={"verify_signature": False, "verify_exp": False, "verify_iat": False})
        assert payload == {"sub": "admin", "iat": int(clock.now), "exp": int(clock.now) + 900}

    def test_issuer_is_issued_and_required(self, clock):
        with_issuer = TokenCodec(secret=SECRET, issuer="authgate", clock=clock)
        without_issuer = TokenCodec(secret=SECRET, clock=clock)

        assert with_issuer.verify(with_issuer.issue("admin")).subject == "admin"
        with pytest.raises(InvalidCredential):
            with_issuer.verify(without_issuer.issue("admin"))

    def test_empty_secret_is_an_internal_failure(self):
        with pytest.raises(InternalFailure):
            TokenCodec(secret="")


class TestRejection:
    """Every failure looks the same to the caller."""

    def test_wrong_secret(self, codec, clock):
        other = TokenCodec(secret="another-secret-entirely-0123456789", clock=clock)
        with pytest.raises(InvalidCredential) as exc_info:
            codec.verify(other.issue("admin"))
        assert exc_info.value.reason == "signature"

    def test_tampered_claims(self, codec):
        header, payload, signature = codec.issue("admin").split(".")
        forged_payload = jwt.utils.base64url_encode(b'{"sub":"root","iat":1,"exp":9999999999}').decode()
        with pytest.raises(InvalidCredential):
            codec.verify(f"{header}.{forged_payload}.{signature}")

    @pytest.mark.parametrize("token", ["not-a-token", "a.b.c", "", "...."])
    def test_undecodable(self, codec, token):
        with pytest.raises(InvalidCredential):
            codec.verify(token)

    def test_other_algorithm_rejected(self, codec, clock):
        token = jwt.encode(
            {"sub": "admin", "iat": int(clock.now), "exp": int(clock.now) + 60},
            SECRET,
            algorithm="HS512",
        )
        with pytest.raises(InvalidCredential):
            codec.verify(token)

    def test_unsigned_token_rejected(self, codec, clock):
        header = jwt.utils.base64url_encode(b'{"alg":"none","typ":"JWT"}').decode()
        payload = jwt.utils.base64url_encode(
            f'{{"sub":"admin","iat":{int(clock.now)},"exp":{int(clock.now) + 60}}}'.encode()
        ).decode()
        with pytest.raises(InvalidCredential):
            codec.verify(f"{header}.{payload}.")

    def test_missing_subject_rejected(self, codec, clock):
        token = jwt.encode({"iat": int(clock.now), "exp": int(clock.now) + 60}, SECRET, algorithm="HS256")
        with pytest.raises(InvalidCredential):
            codec.verify(token)

    def test_public_message_is_identical_for_all_causes(self, codec, clock):
        expired = codec.issue("admin", ttl_seconds=0)
        forged = TokenCodec(secret="another-secret-entirely-0123456789", clock=clock).issue("admin")
        messages = set()
        for token in (expired, forged, "garbage"):
            with pytest.raises(InvalidCredential) as exc_info:
                codec.verify(token)
            messages.add(exc_info.value.public_message)

        assert messages == {INVALID_TOKEN_MESSAGE}


class TestExtractBearerToken:

    def test_extracts_token(self):
        assert extract_bearer_token("Bearer abc.def.ghi") == "abc.def.ghi"

    @pytest.mark.parametrize("header", [None, ""])
    def test_missing_header(self, header):
        with pytest.raises(MissingCredential):
            extract_bearer_token(header)

    @pytest.mark.parametrize("header", [
        "B",
        "Bear",
        "Bearer",
        "Bearer ",
        "Bearer    ",
        "bearer abc",
        "BEARER abc",
        "Basic YWRtaW46MTIzNA==",
        "Bearerabc",
    ])
    def test_malformed_header(self, header):
        """Short or wrongly prefixed headers fail cleanly instead of mis-slicing."""
        with pytest.raises(MalformedCredential):
            extract_bearer_token(header)
