"""Tests for JWT signature verification and claims validation."""

import time

import pytest

from myoauth.auth.crypto import Cryptoblock
from myoauth.auth.jwt import ClaimsValidator, JWTVerifier
from myoauth.auth.models import JWK
from myoauth.exceptions import ClaimsError, CryptoProviderError

from conftest import access_claims, id_claims


class UntouchableKeySet(list):
    """Fails the test if anything looks up a key."""

    def __iter__(self):
        raise AssertionError("key set was consulted")


@pytest.fixture
def verifier() -> JWTVerifier:
    return JWTVerifier(Cryptoblock())


@pytest.fixture
def key_set(signing_key) -> list[JWK]:
    return [JWK.model_validate(signing_key.jwk())]


class TestVerify:
    def test_valid_token(self, verifier, key_set, signing_key, config):
        token = signing_key.sign(access_claims(config))
        assert verifier.verify(token, key_set)

    @pytest.mark.parametrize("token", ["a.b", "a.b.c.d", "abc", ""])
    def test_wrong_segment_count(self, verifier, token):
        assert not verifier.verify(token, UntouchableKeySet())

    def test_unknown_kid(self, verifier, key_set, signing_key, config):
        token = signing_key.sign(access_claims(config), kid="unknown")
        assert not verifier.verify(token, key_set)

    def test_signed_with_other_key(self, verifier, key_set, other_key, config):
        # Claims to be key-1 but was signed with key-2
        token = other_key.sign(access_claims(config), kid="key-1")
        assert not verifier.verify(token, key_set)

    def test_tampered_payload(self, verifier, key_set, signing_key, config):
        header, _, signature = signing_key.sign(access_claims(config)).split(".")
        _, payload, _ = signing_key.sign(access_claims(config, sub="mallory")).split(".")
        assert not verifier.verify(f"{header}.{payload}.{signature}", key_set)

    def test_header_not_json(self, verifier, key_set):
        assert not verifier.verify("bm90IGpzb24.e30.c2ln", key_set)

    def test_unsupported_algorithm(self, verifier, key_set, signing_key, config):
        crypto = Cryptoblock()
        token = signing_key.sign(access_claims(config))
        _, payload, signature = token.split(".")
        header = crypto.base64url_encode(b'{"alg":"HS256","kid":"key-1"}')
        assert not verifier.verify(f"{header}.{payload}.{signature}", key_set)

    def test_crypto_backend_failure_is_raised(self, verifier, signing_key, config):
        broken = [JWK.model_validate({**signing_key.jwk(), "kty": "oct"})]
        token = signing_key.sign(access_claims(config))
        with pytest.raises(CryptoProviderError):
            verifier.verify(token, broken)

    def test_malformed_modulus_is_raised(self, verifier, signing_key, config):
        broken = [JWK.model_validate({**signing_key.jwk(), "n": "!!!!"})]
        token = signing_key.sign(access_claims(config))
        with pytest.raises(CryptoProviderError):
            verifier.verify(token, broken)

    def test_key_id(self, verifier, signing_key, config):
        assert verifier.key_id(signing_key.sign(access_claims(config))) == "key-1"
        assert verifier.key_id("a.b") is None
        assert verifier.key_id("!!.b.c") is None


class TestClaimsValidator:
    @pytest.fixture
    def validator(self, config) -> ClaimsValidator:
        return ClaimsValidator(config, leeway_s=60)

    @pytest.fixture
    def web_key(self, key_set) -> JWK:
        return key_set[0]

    def test_access_token(self, validator, web_key, signing_key, config):
        claims = validator.validate(signing_key.sign(access_claims(config)), "access", web_key)
        assert claims.sub == "user-123"
        assert claims.client_id == config.client_id

    def test_id_token(self, validator, web_key, signing_key, config):
        claims = validator.validate(signing_key.sign(id_claims(config)), "id", web_key)
        assert claims.email == "alice@example.com"
        assert claims.model_extra["cognito:username"] == "alice"

    def test_id_token_with_at_hash(self, validator, web_key, signing_key, config):
        token = signing_key.sign(id_claims(config, at_hash="5Rm6bvIUSPnMrLHsdVi6dA"))
        assert validator.validate(token, "id", web_key).sub == "user-123"

    def test_signed_with_other_key(self, validator, web_key, other_key, config):
        token = other_key.sign(access_claims(config), kid="key-1")
        with pytest.raises(ClaimsError):
            validator.validate(token, "access", web_key)

    def test_wrong_issuer(self, validator, web_key, signing_key, config):
        token = signing_key.sign(access_claims(config, iss="https://evil.example.com"))
        with pytest.raises(ClaimsError, match="issuer"):
            validator.validate(token, "access", web_key)

    def test_wrong_token_use(self, validator, web_key, signing_key, config):
        with pytest.raises(ClaimsError, match="token_use"):
            validator.validate(signing_key.sign(id_claims(config)), "access", web_key)

    def test_access_token_used_as_id_token(self, validator, web_key, signing_key, config):
        with pytest.raises(ClaimsError):
            validator.validate(signing_key.sign(access_claims(config)), "id", web_key)

    def test_wrong_client_for_access_token(self, validator, web_key, signing_key, config):
        token = signing_key.sign(access_claims(config, client_id="other-client"))
        with pytest.raises(ClaimsError, match="client"):
            validator.validate(token, "access", web_key)

    def test_wrong_audience_for_id_token(self, validator, web_key, signing_key, config):
        token = signing_key.sign(id_claims(config, aud="other-client"))
        with pytest.raises(ClaimsError, match="audience"):
            validator.validate(token, "id", web_key)

    def test_expired(self, validator, web_key, signing_key, config):
        token = signing_key.sign(access_claims(config, exp=int(time.time()) - 120))
        with pytest.raises(ClaimsError, match="expired"):
            validator.validate(token, "access", web_key)

    def test_expiry_within_leeway(self, validator, web_key, signing_key, config):
        token = signing_key.sign(access_claims(config, exp=int(time.time()) - 10))
        assert validator.validate(token, "access", web_key).sub == "user-123"

    def test_not_valid_yet(self, validator, web_key, signing_key, config):
        token = signing_key.sign(access_claims(config, nbf=int(time.time()) + 600))
        with pytest.raises(ClaimsError, match="not yet valid"):
            validator.validate(token, "access", web_key)

    def test_issued_in_future(self, validator, web_key, signing_key, config):
        token = signing_key.sign(access_claims(config, iat=int(time.time()) + 600))
        with pytest.raises(ClaimsError, match="future"):
            validator.validate(token, "access", web_key)

    def test_missing_expiry(self, validator, web_key, signing_key, config):
        claims = access_claims(config)
        del claims["exp"]
        with pytest.raises(ClaimsError):
            validator.validate(signing_key.sign(claims), "access", web_key)

    def test_missing_subject(self, validator, web_key, signing_key, config):
        claims = access_claims(config)
        del claims["sub"]
        with pytest.raises(ClaimsError):
            validator.validate(signing_key.sign(claims), "access", web_key)

    def test_unreadable_token(self, validator, web_key):
        with pytest.raises(ClaimsError):
            validator.validate("not-a-token", "access", web_key)
