"""Starlette middleware running the authentication flow for every request."""

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse, RedirectResponse, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from myoauth.config import Settings
from myoauth.auth.flow import AuthenticationFlow
from myoauth.auth.models import FlowDecision, FlowOutcome
from myoauth.auth.session import CookieJar, Session, SessionManager

logger = logging.getLogger(__name__)


class MyOAuthMiddleware(BaseHTTPMiddleware):
    """Binds the authentication flow to HTTP requests and responses."""

    def __init__(
        self,
        app: ASGIApp,
        flow: AuthenticationFlow,
        session_manager: SessionManager,
        settings: Settings,
    ):
        super().__init__(app)
        self.flow = flow
        self.session_manager = session_manager
        self.settings = settings

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        session = await self.session_manager.open(request.cookies.get(self.settings.session_cookie_name))
        cookies = CookieJar(request.cookies)

        # Compared against the redirection URI, so the query string is dropped
        request_url = str(request.url.replace(query=""))
        decision = await self.flow.handle(request_url, request.query_params, session, cookies)

        if decision.outcome is FlowOutcome.PASSTHROUGH:
            request.state.session = session
            request.state.cookies = cookies
            response = await call_next(request)
        else:
            response = self._short_circuit(decision)

        self._write_cookies(response, session, cookies)
        return response

    def _short_circuit(self, decision: FlowDecision) -> Response:
        if decision.outcome is FlowOutcome.REDIRECT:
            return RedirectResponse(url=decision.location, status_code=status.HTTP_302_FOUND)
        return JSONResponse(
            {"detail": "Authentication required"},
            status_code=status.HTTP_401_UNAUTHORIZED,
            headers={"WWW-Authenticate": "Bearer"},
        )

    def _write_cookies(self, response: Response, session: Session, cookies: CookieJar) -> None:
        for cookie in cookies.outbound:
            response.set_cookie(
                key=cookie.name,
                value=cookie.value,
                max_age=cookie.max_age,
                path=cookie.path,
                httponly=cookie.httponly,
                secure=cookie.secure,
                samesite="lax",
            )

        if session.is_new and session.modified:
            response.set_cookie(
                key=self.settings.session_cookie_name,
                value=session.id,
                max_age=session.ttl_seconds,
                httponly=True,
                secure=self.settings.is_production,
                samesite="lax",
            )
