"""Exceptions raised by myoauth."""


class MyOAuthError(Exception):
    """Base class for all myoauth errors."""


class ConfigError(MyOAuthError):
    """One or more required settings are missing."""

    def __init__(self, missing: list[str]):
        self.missing = list(missing)
        super().__init__(f"Missing required settings: [{', '.join(self.missing)}]")


class TransportError(MyOAuthError):
    """Network failure or malformed response from a provider endpoint."""


class UnexpectedResponseError(MyOAuthError):
    """The provider answered with a status or body we do not understand."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class CryptoProviderError(MyOAuthError):
    """The crypto backend could not build a key or check a signature."""


class ClaimsError(MyOAuthError):
    """A token with a valid signature carries claims we must reject."""


class GrantOutcomeError(RuntimeError):
    """The empty side of a grant outcome was read."""
