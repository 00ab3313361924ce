"""FastAPI application wiring the myoauth middleware."""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from myoauth.config import CognitoConfig, Settings, get_settings
from myoauth.auth.cognito import CognitoService
from myoauth.auth.crypto import Cryptoblock
from myoauth.auth.flow import AuthenticationFlow
from myoauth.auth.jwks import KeySetCache
from myoauth.auth.jwt import ClaimsValidator, JWTVerifier
from myoauth.auth.middleware import MyOAuthMiddleware
from myoauth.auth.routes import router as auth_router
from myoauth.auth.session import SessionManager, SessionStore
from myoauth.exceptions import TransportError

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def create_app(
    settings: Settings | None = None,
    http_client: httpx.AsyncClient | None = None,
    session_store: SessionStore | None = None,
) -> FastAPI:
    """Build the application. Raises ConfigError when required settings are missing."""
    settings = settings or get_settings()
    configure_logging(settings)

    config = CognitoConfig.from_settings(settings)
    http_client = http_client or httpx.AsyncClient(timeout=settings.http_timeout_s)

    cryptoblock = Cryptoblock()
    key_cache = KeySetCache(config, http_client, min_refresh_interval_s=settings.jwks_min_refresh_interval_s)
    flow = AuthenticationFlow(
        config=config,
        settings=settings,
        cryptoblock=cryptoblock,
        cognito=CognitoService(config, http_client),
        key_cache=key_cache,
        verifier=JWTVerifier(cryptoblock),
        claims_validator=ClaimsValidator(config, leeway_s=settings.claims_leeway_s),
    )
    session_manager = SessionManager(settings, store=session_store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        logger.info("Starting myoauth with Amazon Cognito...")
        logger.info(f"userPoolId={config.user_pool_id}")
        logger.info(f"region={config.region}")
        logger.info(f"clientId={config.client_id}")

        # The filter cannot verify anything without the user pool's keys
        try:
            await key_cache.load_key_set()
        except TransportError as e:
            logger.error(f"Unable to load web keys: {e}")
            raise

        yield

        await http_client.aclose()
        logger.info("Shutting down myoauth...")

    app = FastAPI(
        title="myoauth",
        description="OAuth 2.0 authorization code flow with PKCE for Amazon Cognito",
        version="0.9.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.flow = flow
    app.state.key_cache = key_cache

    app.add_middleware(
        MyOAuthMiddleware,
        flow=flow,
        session_manager=session_manager,
        settings=settings,
    )
    app.include_router(auth_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": "myoauth", "keys": len(key_cache.keys)}

    return app
