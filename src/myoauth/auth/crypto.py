"""Secure and cryptographic building blocks."""

import base64
import binascii
import hashlib
import secrets

from myoauth.auth.models import PKCEPair

# RFC 7636 unreserved characters
CODE_VERIFIER_SYMBOLS = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~"
CODE_VERIFIER_LENGTH = 128


class Cryptoblock:
    """Constant-time comparison, secure randomness, PKCE and base64url helpers.

    Instances hold no mutable state. Build one at startup and hand it to the
    components that need it.
    """

    def are_equal(self, s1: str | None, s2: str | None) -> bool:
        """Compare two strings in time independent of where they differ."""
        if s1 is None or s2 is None:
            return False

        a = s1.encode("utf-8")
        b = s2.encode("utf-8")
        if len(a) != len(b):
            return False

        result = 0
        for x, y in zip(a, b):
            result |= x ^ y
        return result == 0

    def are_not_equal(self, s1: str | None, s2: str | None) -> bool:
        return not self.are_equal(s1, s2)

    def random(self, num_bits: int) -> str:
        """Return a random number of ``num_bits`` bits as lowercase hex."""
        if num_bits < 0:
            raise ValueError("num_bits must not be negative")
        return format(secrets.randbits(num_bits) if num_bits else 0, "x")

    def code_verifier(self) -> str:
        return "".join(secrets.choice(CODE_VERIFIER_SYMBOLS) for _ in range(CODE_VERIFIER_LENGTH))

    def code_challenge(self, code_verifier: str) -> str:
        return self.base64url_encode(self.sha256(code_verifier.encode("ascii")))

    def pkce_pair(self) -> PKCEPair:
        code_verifier = self.code_verifier()
        return PKCEPair(code_verifier=code_verifier, code_challenge=self.code_challenge(code_verifier))

    def sha256(self, data: bytes) -> bytes:
        return hashlib.sha256(data).digest()

    def base64url_encode(self, data: bytes) -> str:
        return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")

    def base64url_decode(self, data: str) -> bytes:
        """Decode base64url, with or without padding."""
        padded = data + "=" * (-len(data) % 4)
        try:
            return base64.urlsafe_b64decode(padded.encode("ascii"))
        except (binascii.Error, UnicodeEncodeError) as e:
            raise ValueError(f"Invalid base64url input: {e}") from e
