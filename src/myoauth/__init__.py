"""OAuth 2.0 authorization code flow with PKCE for Amazon Cognito."""

__version__ = "0.9.0"
