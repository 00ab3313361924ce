"""Verification of user pool JSON Web Tokens."""

import json
import logging
import time
from typing import Sequence

from jose import jwt
from jose.exceptions import JWTError
from pydantic import ValidationError

from myoauth.config import CognitoConfig
from myoauth.auth.crypto import Cryptoblock
from myoauth.auth.jwks import resolve_key
from myoauth.auth.models import JWK, TokenClaims
from myoauth.exceptions import ClaimsError, CryptoProviderError

logger = logging.getLogger(__name__)

SUPPORTED_ALGORITHM = "RS256"


class JWTVerifier:
    """Checks the RS256 signature of a compact JWT against a key set."""

    def __init__(self, cryptoblock: Cryptoblock):
        self.crypto = cryptoblock

    def _header(self, segment: str) -> dict | None:
        try:
            header = json.loads(self.crypto.base64url_decode(segment))
        except ValueError:
            return None
        return header if isinstance(header, dict) else None

    def key_id(self, token: str) -> str | None:
        """Return the unverified ``kid`` of a token, if it has one."""
        parts = token.split(".")
        if len(parts) != 3:
            return None
        header = self._header(parts[0])
        return header.get("kid") if header else None

    def verify(self, token: str, key_set: Sequence[JWK]) -> bool:
        """Verify a token's signature with RSASSA-PKCS1-v1_5 SHA-256.

        Malformed tokens, unknown key IDs and bad signatures return False.
        Failures of the crypto backend raise CryptoProviderError.
        """
        parts = token.split(".")
        if len(parts) != 3:
            logger.warning(f"Token does not appear to be a JWT ({len(parts)} segments)")
            return False

        header_segment, payload_segment, signature_segment = parts
        header = self._header(header_segment)
        if header is None:
            logger.warning("Token header is not a base64url-encoded JSON object")
            return False

        alg = header.get("alg")
        if alg is not None and alg != SUPPORTED_ALGORITHM:
            logger.warning(f"Token uses unsupported algorithm alg={alg}")
            return False

        kid = header.get("kid")
        web_key = resolve_key(key_set, kid)
        if web_key is None:
            logger.warning(f"Missing public key kid={kid} in JSON Web Key Set (JWKS)")
            return False

        try:
            signing_input = f"{header_segment}.{payload_segment}".encode("ascii")
            signature = self.crypto.base64url_decode(signature_segment)
        except ValueError:
            logger.warning(f"Token kid={kid} has a malformed payload or signature segment")
            return False

        public_key = web_key.public_key()
        try:
            verified = public_key.verify(signing_input, signature)
        except Exception as e:
            raise CryptoProviderError(f"Signature check failed in crypto backend: {e}") from e

        if not verified:
            logger.warning(f"Signature mismatch for kid={kid}. JWT invalid")
        return verified


class ClaimsValidator:
    """Decodes a token with python-jose and applies the user pool's claim rules."""

    def __init__(self, config: CognitoConfig, leeway_s: int = 60):
        self.config = config
        self.leeway_s = leeway_s

    def validate(self, token: str, token_use: str, web_key: JWK) -> TokenClaims:
        """Return the token's claims or raise ClaimsError."""
        # Cognito puts the app client in aud for id tokens and in client_id for access tokens
        is_identity = token_use == "id"
        try:
            payload = jwt.decode(
                token,
                web_key.model_dump(),
                algorithms=[SUPPORTED_ALGORITHM],
                audience=self.config.client_id,
                issuer=self.config.issuer,
                options={
                    "verify_aud": is_identity,
                    "require_aud": is_identity,
                    "require_exp": True,
                    "verify_at_hash": False,
                    "leeway": self.leeway_s,
                },
            )
            claims = TokenClaims.model_validate(payload)
        except JWTError as e:
            raise ClaimsError(f"Invalid {token_use} token: {e}") from e
        except ValidationError as e:
            raise ClaimsError(f"Missing or malformed claims: {e}") from e

        if claims.token_use != token_use:
            raise ClaimsError(f"Invalid token_use: expected {token_use!r}, got {claims.token_use!r}")

        if not is_identity and claims.client_id != self.config.client_id:
            raise ClaimsError(f"Token was issued for client {claims.client_id!r}")

        # python-jose only checks that iat is numeric
        if claims.iat is not None and claims.iat > time.time() + self.leeway_s:
            raise ClaimsError("Token was issued in the future")

        return claims
