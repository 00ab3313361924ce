"""Authentication routes for login, logout and the current user."""

import logging
from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import RedirectResponse
from jose import jwt
from jose.exceptions import JWTError

from myoauth.auth.flow import AuthenticationFlow
from myoauth.auth.models import TokenClaims
from myoauth.auth.session import ACCESS_TOKEN_EXPIRATION_KEY, IDENTITY_TOKEN_KEY, CookieJar, Session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


def get_flow(request: Request) -> AuthenticationFlow:
    return request.app.state.flow


def get_session(request: Request) -> Session:
    """Session opened by MyOAuthMiddleware for this request."""
    return request.state.session


def get_cookies(request: Request) -> CookieJar:
    return request.state.cookies


@router.get("/login")
async def login(
    flow: Annotated[AuthenticationFlow, Depends(get_flow)],
    session: Annotated[Session, Depends(get_session)],
):
    """
    Start the authorization code flow.
    Redirects to the Cognito hosted UI.
    """
    auth_url = await flow.begin_authorization(session)
    return RedirectResponse(url=auth_url, status_code=status.HTTP_302_FOUND)


@router.post("/logout")
async def logout(
    flow: Annotated[AuthenticationFlow, Depends(get_flow)],
    session: Annotated[Session, Depends(get_session)],
    cookies: Annotated[CookieJar, Depends(get_cookies)],
):
    """Log out the current user by clearing tokens and the refresh cookie."""
    await flow.sign_out(session, cookies)
    return RedirectResponse(url="/", status_code=status.HTTP_302_FOUND)


@router.get("/me")
async def get_current_user(session: Annotated[Session, Depends(get_session)]):
    """Get information about the currently authenticated user."""
    id_token = await session.get(IDENTITY_TOKEN_KEY)
    if not id_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # Verified when it was stored in the session
    try:
        claims = TokenClaims.model_validate(jwt.get_unverified_claims(id_token))
    except (JWTError, ValueError) as e:
        logger.error(f"Unreadable identity token in session {session.id}: {e}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    expiration = await session.get(ACCESS_TOKEN_EXPIRATION_KEY)
    extra = claims.model_extra or {}
    return {
        "sub": claims.sub,
        "username": extra.get("cognito:username", claims.username),
        "email": claims.email,
        "token_expires_at": datetime.fromtimestamp(expiration, timezone.utc).isoformat() if expiration else None,
    }
