"""Authentication module for myoauth."""

from myoauth.auth.models import (
    JWK,
    FlowDecision,
    FlowOutcome,
    GrantOutcome,
    PendingAuthorization,
    PKCEPair,
    ProviderError,
    TokenClaims,
    UserPoolToken,
)
from myoauth.auth.crypto import Cryptoblock
from myoauth.auth.jwks import KeySetCache, resolve_key
from myoauth.auth.jwt import ClaimsValidator, JWTVerifier
from myoauth.auth.cognito import CognitoService
from myoauth.auth.session import (
    CookieJar,
    InMemorySessionStore,
    RedisSessionStore,
    Session,
    SessionManager,
    SessionStore,
)
from myoauth.auth.flow import AuthenticationFlow
from myoauth.auth.middleware import MyOAuthMiddleware
from myoauth.auth.routes import router as auth_router

__all__ = [
    # Models
    "JWK",
    "FlowDecision",
    "FlowOutcome",
    "GrantOutcome",
    "PendingAuthorization",
    "PKCEPair",
    "ProviderError",
    "TokenClaims",
    "UserPoolToken",
    # Primitives
    "Cryptoblock",
    # Keys and tokens
    "KeySetCache",
    "resolve_key",
    "ClaimsValidator",
    "JWTVerifier",
    # Providers
    "CognitoService",
    # Session
    "CookieJar",
    "InMemorySessionStore",
    "RedisSessionStore",
    "Session",
    "SessionManager",
    "SessionStore",
    # Flow
    "AuthenticationFlow",
    "MyOAuthMiddleware",
    # Routes
    "auth_router",
]
