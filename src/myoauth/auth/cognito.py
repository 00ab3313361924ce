"""Amazon Cognito authorization and token endpoints."""

import base64
import logging
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from myoauth.config import CognitoConfig
from myoauth.auth.models import GrantOutcome, ProviderError, UserPoolToken
from myoauth.exceptions import TransportError, UnexpectedResponseError

logger = logging.getLogger(__name__)


def build_authorization_url(config: CognitoConfig, state: str, code_challenge: str) -> str:
    """Build the authorization endpoint URL for a login redirect."""
    params = {
        "response_type": "code",
        "client_id": config.client_id,
        "redirect_uri": config.redirect_uri,
        "state": state,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
    }
    return f"{config.authorization_endpoint}?{urlencode(params)}"


class CognitoService:
    """Backchannel client for the user pool's hosted OAuth 2.0 endpoints."""

    def __init__(self, config: CognitoConfig, http_client: httpx.AsyncClient):
        self.config = config
        self._http = http_client

        credentials = base64.b64encode(f"{config.client_id}:{config.client_secret}".encode("utf-8"))
        self._authorization_header = f"Basic {credentials.decode('ascii')}"

    def authorization_request(self, state: str, code_challenge: str) -> str:
        return build_authorization_url(self.config, state, code_challenge)

    async def authorization_code_exchange(self, code: str, code_verifier: str) -> GrantOutcome:
        """Exchange an authorization code for user pool tokens."""
        data = {
            "grant_type": "authorization_code",
            "client_id": self.config.client_id,
            "code": code,
            "code_verifier": code_verifier,
            "redirect_uri": self.config.redirect_uri,
        }
        return await self._contact_token_endpoint(data)

    async def refresh_token_exchange(self, refresh_token: str) -> GrantOutcome:
        """Get new access and identity tokens with a refresh token."""
        data = {
            "grant_type": "refresh_token",
            "client_id": self.config.client_id,
            "refresh_token": refresh_token,
        }
        return await self._contact_token_endpoint(data)

    async def _contact_token_endpoint(self, data: dict[str, str]) -> GrantOutcome:
        try:
            resp = await self._http.post(
                self.config.token_endpoint,
                data=data,
                headers={
                    "Authorization": self._authorization_header,
                    "Content-Type": "application/x-www-form-urlencoded",
                },
            )
        except httpx.HTTPError as e:
            raise TransportError(f"Token endpoint request failed: {e}") from e

        if resp.status_code not in (200, 400):
            raise UnexpectedResponseError(
                f"Unable to proceed with statusCode={resp.status_code}", status_code=resp.status_code
            )

        try:
            body = resp.json()
        except ValueError as e:
            raise TransportError(f"Token endpoint returned non-JSON body (status {resp.status_code})") from e

        if resp.status_code == 200:
            try:
                return GrantOutcome.success(UserPoolToken.model_validate(body))
            except ValidationError as e:
                raise UnexpectedResponseError(f"Incomplete token response: {e}", status_code=200) from e

        error = body.get("error") if isinstance(body, dict) else None
        if not isinstance(error, str):
            raise UnexpectedResponseError("Token endpoint error response has no 'error' field", status_code=400)
        provider_error = ProviderError.from_code(error)
        logger.warning(f"Token endpoint rejected {data['grant_type']} grant: {provider_error.value}")
        return GrantOutcome.failure(provider_error)
