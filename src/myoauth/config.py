"""Configuration management for myoauth."""

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Mapping

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from myoauth.exceptions import ConfigError

logger = logging.getLogger(__name__)

# Setting names that must all be present before the filter can start
REQUIRED_SETTINGS = (
    "user_pool_id",
    "client_id",
    "client_secret",
    "domain_prefix",
    "region",
    "redirect_uri",
)

PROVIDER_DOMAIN = "amazoncognito.com"


def get_aws_secrets(secret_name: str, region_name: str) -> dict:
    """Fetch secrets from AWS Secrets Manager."""
    try:
        session = boto3.session.Session()
        client = session.client(service_name="secretsmanager", region_name=region_name)
        response = client.get_secret_value(SecretId=secret_name)
        return json.loads(response["SecretString"])
    except (BotoCoreError, ClientError, KeyError, ValueError) as e:
        logger.warning(f"Failed to fetch AWS secret {secret_name}: {e}. Falling back to environment variables.")
        return {}


class Settings(BaseSettings):
    """Application settings loaded from environment variables and optionally AWS Secrets Manager."""

    model_config = SettingsConfigDict(
        env_prefix="MYOAUTH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Amazon Cognito user pool and app client
    user_pool_id: str | None = Field(None, description="Cognito user pool ID")
    client_id: str | None = Field(None, description="App client ID")
    client_secret: str | None = Field(None, description="App client secret")
    domain_prefix: str | None = Field(None, description="Hosted UI domain prefix")
    region: str | None = Field(None, description="AWS region of the user pool")
    redirect_uri: str | None = Field(None, description="Exact callback URL registered with the app client")

    # Where users land after a successful login
    landing_path: str = Field(default="/")

    # Backchannel
    http_timeout_s: float = Field(default=10.0)

    # Refresh token cookie
    refresh_cookie_name: str = Field(default="__Host-myoauth_refresh_token")
    refresh_cookie_max_age: int = Field(default=30 * 24 * 60 * 60)

    # Session Configuration
    session_cookie_name: str = Field(default="myoauth_session")
    session_expire_minutes: int = Field(default=60)
    redis_url: str | None = Field(default=None)

    # Token validation
    claims_leeway_s: int = Field(default=60)
    jwks_min_refresh_interval_s: float = Field(default=300.0)

    # Server Configuration
    server_env: str = Field(default="development")
    log_level: str = Field(default="INFO")

    # Optional AWS Secrets Manager source for the Cognito values
    aws_secret_name: str | None = Field(default=None)
    aws_region: str = Field(default="us-east-1")

    @property
    def is_production(self) -> bool:
        return self.server_env.lower() == "production"

    def cognito_values(self) -> dict[str, str | None]:
        """Return the required Cognito values, filling gaps from AWS Secrets Manager."""
        values = {name: getattr(self, name) for name in REQUIRED_SETTINGS}
        if self.aws_secret_name and not all(values.values()):
            secrets = get_aws_secrets(self.aws_secret_name, self.aws_region)
            for name, value in values.items():
                if not value:
                    values[name] = secrets.get(name)
        return values


@dataclass(frozen=True)
class CognitoConfig:
    user_pool_id: str
    client_id: str
    client_secret: str
    domain_prefix: str
    region: str
    redirect_uri: str

    @property
    def issuer(self) -> str:
        return f"https://cognito-idp.{self.region}.amazonaws.com/{self.user_pool_id}"

    @property
    def jwks_uri(self) -> str:
        return f"{self.issuer}/.well-known/jwks.json"

    @property
    def auth_domain(self) -> str:
        return f"https://{self.domain_prefix}.auth.{self.region}.{PROVIDER_DOMAIN}"

    @property
    def authorization_endpoint(self) -> str:
        return f"{self.auth_domain}/oauth2/authorize"

    @property
    def token_endpoint(self) -> str:
        return f"{self.auth_domain}/oauth2/token"

    @classmethod
    def from_mapping(cls, values: Mapping[str, str | None]) -> "CognitoConfig":
        """Build a config, reporting every missing setting at once."""
        missing = [name for name in REQUIRED_SETTINGS if not values.get(name)]
        if missing:
            raise ConfigError(missing)
        return cls(**{name: values[name] for name in REQUIRED_SETTINGS})

    @classmethod
    def from_settings(cls, settings: Settings) -> "CognitoConfig":
        return cls.from_mapping(settings.cognito_values())


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
