"""Authentication data models."""

from enum import Enum

from jose import jwk
from jose.exceptions import JOSEError
from pydantic import BaseModel, ConfigDict, Field

from myoauth.exceptions import CryptoProviderError, GrantOutcomeError, UnexpectedResponseError


class PKCEPair(BaseModel):
    """PKCE code verifier and its S256 code challenge."""

    model_config = ConfigDict(frozen=True)

    code_verifier: str
    code_challenge: str


class PendingAuthorization(BaseModel):
    """State and verifier kept in the session until the callback arrives."""

    model_config = ConfigDict(frozen=True)

    state: str
    code_verifier: str


class JWK(BaseModel):
    """RSA public key published in the user pool's JSON Web Key Set."""

    model_config = ConfigDict(frozen=True)

    kid: str = Field(..., description="Key ID")
    alg: str = Field(..., description="Algorithm, RS256 for user pools")
    kty: str = Field(..., description="Key type, RSA for user pools")
    e: str = Field(..., description="Base64urlUInt-encoded RSA exponent")
    n: str = Field(..., description="Base64urlUInt-encoded RSA modulus")
    use: str = Field(..., description="Intended use, sig for user pools")

    def public_key(self):
        """Build the RSA public key from ``n`` and ``e``."""
        try:
            return jwk.construct(self.model_dump(), algorithm="RS256")
        except (JOSEError, ValueError, TypeError) as e:
            raise CryptoProviderError(f"Unable to build public key kid={self.kid}: {e}") from e


class UserPoolToken(BaseModel):
    """Tokens handed out by the user pool token endpoint."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    id_token: str
    token_type: str
    expires_in: int
    # Absent in the refresh token grant
    refresh_token: str | None = None


class ProviderError(str, Enum):
    """Negative responses of the token endpoint."""

    INVALID_REQUEST = "invalid_request"
    INVALID_CLIENT = "invalid_client"
    INVALID_GRANT = "invalid_grant"
    UNAUTHORIZED_CLIENT = "unauthorized_client"
    UNSUPPORTED_GRANT_TYPE = "unsupported_grant_type"

    @classmethod
    def from_code(cls, code: str) -> "ProviderError":
        for member in cls:
            if member.value == code:
                return member
        raise UnexpectedResponseError(f"{code!r} is not a known token endpoint error", status_code=400)


class GrantOutcome:
    """Either a user pool token or a provider error, never both."""

    __slots__ = ("_token", "_error")

    def __init__(self, token: UserPoolToken | None = None, error: ProviderError | None = None):
        if (token is None) == (error is None):
            raise ValueError("GrantOutcome needs exactly one of token or error")
        self._token = token
        self._error = error

    @classmethod
    def success(cls, token: UserPoolToken) -> "GrantOutcome":
        return cls(token=token)

    @classmethod
    def failure(cls, error: ProviderError) -> "GrantOutcome":
        return cls(error=error)

    @property
    def is_success(self) -> bool:
        return self._token is not None

    @property
    def is_error(self) -> bool:
        return self._error is not None

    @property
    def token(self) -> UserPoolToken:
        if self._token is None:
            raise GrantOutcomeError(f"Grant failed with {self._error}; there is no token")
        return self._token

    @property
    def error(self) -> ProviderError:
        if self._error is None:
            raise GrantOutcomeError("Grant succeeded; there is no error")
        return self._error

    def __repr__(self) -> str:
        if self.is_success:
            return "GrantOutcome(success)"
        return f"GrantOutcome(error={self._error.value})"


class TokenClaims(BaseModel):
    """Validated user pool token claims."""

    model_config = ConfigDict(extra="allow")

    sub: str = Field(..., description="Subject (user ID)")
    iss: str = Field(..., description="Issuer")
    token_use: str = Field(..., description="access or id")
    exp: int = Field(..., description="Expiration timestamp")
    iat: int | None = Field(None, description="Issued at timestamp")
    nbf: int | None = Field(None, description="Not before timestamp")
    auth_time: int | None = Field(None, description="Authentication timestamp")
    aud: str | None = Field(None, description="Audience, id tokens only")
    client_id: str | None = Field(None, description="App client ID, access tokens only")
    username: str | None = Field(None, description="Cognito username")
    email: str | None = Field(None, description="User's email address")


class FlowOutcome(str, Enum):
    PASSTHROUGH = "passthrough"
    DENY = "deny"
    REDIRECT = "redirect"


class FlowDecision(BaseModel):
    """What the host should do with the current request."""

    model_config = ConfigDict(frozen=True)

    outcome: FlowOutcome
    location: str | None = None
    reason: str | None = None

    @classmethod
    def passthrough(cls, reason: str | None = None) -> "FlowDecision":
        return cls(outcome=FlowOutcome.PASSTHROUGH, reason=reason)

    @classmethod
    def deny(cls, reason: str) -> "FlowDecision":
        return cls(outcome=FlowOutcome.DENY, reason=reason)

    @classmethod
    def redirect(cls, location: str) -> "FlowDecision":
        return cls(outcome=FlowOutcome.REDIRECT, location=location)
