"""Request classification for the OAuth 2.0 authorization code flow.

Every inbound request is classified, first match wins:

1. The request URL is the redirection URI: exchange the authorization code.
2. The session holds an unexpired access token: pass through.
3. A refresh token cookie is present: run the refresh token grant.
4. Anything else: pass through unauthenticated.

Authorization is left to the application. This flow only acquires and
refreshes tokens, and denies a request when doing so fails.
"""

import logging
import time
from typing import Callable, Mapping

from myoauth.config import CognitoConfig, Settings
from myoauth.auth.cognito import CognitoService
from myoauth.auth.crypto import Cryptoblock
from myoauth.auth.jwks import KeySetCache
from myoauth.auth.jwt import ClaimsValidator, JWTVerifier
from myoauth.auth.models import FlowDecision, PendingAuthorization, ProviderError, UserPoolToken
from myoauth.auth.session import (
    ACCESS_TOKEN_EXPIRATION_KEY,
    ACCESS_TOKEN_KEY,
    CODE_VERIFIER_KEY,
    IDENTITY_TOKEN_KEY,
    STATE_KEY,
    CookieJar,
    Session,
)
from myoauth.exceptions import ClaimsError, MyOAuthError

logger = logging.getLogger(__name__)

STATE_BITS = 160


class AuthenticationFlow:
    """Decides, per request, whether to authenticate, refresh, deny or pass through."""

    def __init__(
        self,
        config: CognitoConfig,
        settings: Settings,
        cryptoblock: Cryptoblock,
        cognito: CognitoService,
        key_cache: KeySetCache,
        verifier: JWTVerifier,
        claims_validator: ClaimsValidator,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.settings = settings
        self.crypto = cryptoblock
        self.cognito = cognito
        self.key_cache = key_cache
        self.verifier = verifier
        self.claims_validator = claims_validator
        self._clock = clock

    async def handle(
        self,
        request_url: str,
        params: Mapping[str, str],
        session: Session,
        cookies: CookieJar,
    ) -> FlowDecision:
        if self.is_redirection_uri(request_url):
            return await self.try_authorization_code_exchange(params, session, cookies)

        if await self.has_valid_access_token(session):
            return FlowDecision.passthrough()

        refresh_token = cookies.get(self.settings.refresh_cookie_name)
        if refresh_token:
            return await self.try_refresh_token_grant(refresh_token, session, cookies)

        return FlowDecision.passthrough("unauthenticated")

    def is_redirection_uri(self, request_url: str) -> bool:
        return self.crypto.are_equal(request_url, self.config.redirect_uri)

    async def has_valid_access_token(self, session: Session) -> bool:
        if await session.get(ACCESS_TOKEN_KEY) is None:
            return False
        expiration = await session.get(ACCESS_TOKEN_EXPIRATION_KEY)
        if expiration is None:
            return False
        return self._clock() < float(expiration)

    async def begin_authorization(self, session: Session) -> str:
        """Store a fresh state and PKCE verifier and return the authorization URL."""
        pkce = self.crypto.pkce_pair()
        pending = PendingAuthorization(state=self.crypto.random(STATE_BITS), code_verifier=pkce.code_verifier)

        await session.set(STATE_KEY, pending.state)
        await session.set(CODE_VERIFIER_KEY, pending.code_verifier)

        return self.cognito.authorization_request(pending.state, pkce.code_challenge)

    async def sign_out(self, session: Session, cookies: CookieJar) -> None:
        for key in (ACCESS_TOKEN_KEY, ACCESS_TOKEN_EXPIRATION_KEY, IDENTITY_TOKEN_KEY):
            await session.remove(key)
        cookies.delete(self.settings.refresh_cookie_name)
        logger.info(f"sessionid={session.id}, outcome=success, message=\"signed out\"")

    async def try_authorization_code_exchange(
        self,
        params: Mapping[str, str],
        session: Session,
        cookies: CookieJar,
    ) -> FlowDecision:
        try:
            return await self._authorization_code_exchange(params, session, cookies)
        except MyOAuthError as e:
            logger.error(f"sessionid={session.id}, outcome=denied, message=\"authorization code exchange failed: {e}\"")
            return FlowDecision.deny("authorization code exchange failed")

    async def try_refresh_token_grant(
        self,
        refresh_token: str,
        session: Session,
        cookies: CookieJar,
    ) -> FlowDecision:
        try:
            return await self._refresh_token_grant(refresh_token, session, cookies)
        except MyOAuthError as e:
            logger.error(f"sessionid={session.id}, outcome=denied, message=\"refresh token grant failed: {e}\"")
            return FlowDecision.deny("refresh token grant failed")

    async def _pending_authorization(self, session: Session) -> PendingAuthorization | None:
        state = await session.get(STATE_KEY)
        code_verifier = await session.get(CODE_VERIFIER_KEY)
        if state is None or code_verifier is None:
            return None
        return PendingAuthorization(state=state, code_verifier=code_verifier)

    async def _authorization_code_exchange(
        self,
        params: Mapping[str, str],
        session: Session,
        cookies: CookieJar,
    ) -> FlowDecision:
        pending = await self._pending_authorization(session)
        saved_state = pending.state if pending else None

        if self.crypto.are_not_equal(params.get("state"), saved_state):
            logger.warning(f"sessionid={session.id}, outcome=denied, message=\"state mismatch\"")
            return FlowDecision.deny("state mismatch")

        code = params.get("code")
        if not code:
            error = params.get("error", "no code")
            logger.warning(f"sessionid={session.id}, outcome=denied, message=\"callback without code: {error}\"")
            return FlowDecision.deny("missing authorization code")

        outcome = await self.cognito.authorization_code_exchange(code, pending.code_verifier)
        if outcome.is_error:
            logger.warning(
                f"sessionid={session.id}, outcome=denied, "
                f"message=\"authorization code exchange failed: {outcome.error.value}\""
            )
            return FlowDecision.deny(f"authorization code exchange failed: {outcome.error.value}")

        token = outcome.token
        logger.info(
            f"sessionid={session.id}, outcome=success, "
            f"message=\"authorization code exchange succeeded. new access token issued.\", "
            f"expires_in={token.expires_in}"
        )

        if not await self._verify(token.access_token, "access"):
            logger.warning(
                f"sessionid={session.id}, outcome=denied, "
                f"message=\"authorization code exchange succeeded, but failed to verify the access token.\""
            )
            return FlowDecision.deny("access token verification failed")

        if not await self._verify(token.id_token, "id"):
            logger.warning(
                f"sessionid={session.id}, outcome=denied, "
                f"message=\"authorization code exchange succeeded, but failed to verify the identity token.\""
            )
            return FlowDecision.deny("identity token verification failed")

        await self._store_tokens(session, token)

        if token.refresh_token:
            cookies.set(
                self.settings.refresh_cookie_name,
                token.refresh_token,
                max_age=self.settings.refresh_cookie_max_age,
                path="/",
                httponly=True,
                secure=True,
            )

        await session.remove(STATE_KEY)
        await session.remove(CODE_VERIFIER_KEY)

        return FlowDecision.redirect(self.settings.landing_path)

    async def _refresh_token_grant(
        self,
        refresh_token: str,
        session: Session,
        cookies: CookieJar,
    ) -> FlowDecision:
        outcome = await self.cognito.refresh_token_exchange(refresh_token)
        if outcome.is_error:
            logger.warning(
                f"sessionid={session.id}, outcome=denied, "
                f"message=\"refresh token grant flow failed: {outcome.error.value}\""
            )
            if outcome.error is ProviderError.INVALID_GRANT:
                cookies.delete(self.settings.refresh_cookie_name)
            return FlowDecision.deny(f"refresh token grant failed: {outcome.error.value}")

        token = outcome.token
        logger.info(
            f"sessionid={session.id}, outcome=success, "
            f"message=\"refresh token grant flow succeeded. new access token issued.\", "
            f"expires_in={token.expires_in}"
        )

        if not await self._verify(token.access_token, "access"):
            logger.warning(
                f"sessionid={session.id}, outcome=denied, "
                f"message=\"refresh token grant succeeded, but failed to verify the access token.\""
            )
            return FlowDecision.deny("access token verification failed")

        if not await self._verify(token.id_token, "id"):
            logger.warning(
                f"sessionid={session.id}, outcome=denied, "
                f"message=\"refresh token grant succeeded, but failed to verify the identity token.\""
            )
            return FlowDecision.deny("identity token verification failed")

        await self._store_tokens(session, token)
        return FlowDecision.passthrough("refreshed")

    async def _verify(self, token: str, token_use: str) -> bool:
        # Refetches the key set once when the kid is unknown
        web_key = await self.key_cache.get_key(self.verifier.key_id(token))

        if web_key is None or not self.verifier.verify(token, self.key_cache.keys):
            return False

        try:
            self.claims_validator.validate(token, token_use, web_key)
        except ClaimsError as e:
            logger.warning(f"Rejected {token_use} token: {e}")
            return False
        return True

    async def _store_tokens(self, session: Session, token: UserPoolToken) -> None:
        await session.set(ACCESS_TOKEN_KEY, token.access_token)
        await session.set(ACCESS_TOKEN_EXPIRATION_KEY, self._clock() + token.expires_in)
        await session.set(IDENTITY_TOKEN_KEY, token.id_token)
