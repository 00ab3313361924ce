"""JSON Web Key Set retrieval and caching."""

import asyncio
import logging
import time
from typing import Callable, Sequence

import httpx
from pydantic import ValidationError

from myoauth.config import CognitoConfig
from myoauth.auth.models import JWK
from myoauth.exceptions import TransportError

logger = logging.getLogger(__name__)


def resolve_key(key_set: Sequence[JWK], kid: str | None) -> JWK | None:
    """Find the key with the given key ID."""
    for key in key_set:
        if key.kid == kid:
            return key
    return None


class KeySetCache:
    """Holds the user pool's JWKS.

    The set is replaced as a whole, so readers always see either the old or the
    new tuple. A lookup that misses may trigger one refetch per
    ``min_refresh_interval_s``.
    """

    def __init__(
        self,
        config: CognitoConfig,
        http_client: httpx.AsyncClient,
        min_refresh_interval_s: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self._http = http_client
        self._min_refresh_interval_s = min_refresh_interval_s
        self._clock = clock
        self._keys: tuple[JWK, ...] = ()
        self._fetched_at: float | None = None
        self._lock = asyncio.Lock()

    @property
    def keys(self) -> tuple[JWK, ...]:
        return self._keys

    async def load_key_set(self) -> tuple[JWK, ...]:
        """Fetch the JWKS and replace the cached set."""
        try:
            resp = await self._http.get(self.config.jwks_uri)
            resp.raise_for_status()
            document = resp.json()
        except httpx.HTTPStatusError as e:
            raise TransportError(f"JWKS request failed with status {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"JWKS request failed: {e}") from e
        except ValueError as e:
            raise TransportError(f"JWKS response is not JSON: {e}") from e

        entries = document.get("keys") if isinstance(document, dict) else None
        if not isinstance(entries, list):
            raise TransportError("JWKS response has no 'keys' array")

        try:
            keys = tuple(JWK.model_validate(entry) for entry in entries)
        except ValidationError as e:
            raise TransportError(f"JWKS contains an incomplete key: {e}") from e

        self._keys = keys
        self._fetched_at = self._clock()
        for key in keys:
            logger.info(f"Loaded public key kid={key.kid}")
        return keys

    async def get_key(self, kid: str | None) -> JWK | None:
        """Resolve a key, refetching the set once if the key ID is unknown."""
        key = resolve_key(self._keys, kid)
        if key is not None or kid is None:
            return key

        async with self._lock:
            key = resolve_key(self._keys, kid)
            if key is not None:
                return key
            if self._fetched_at is not None and self._clock() - self._fetched_at < self._min_refresh_interval_s:
                logger.warning(f"Unknown kid={kid}; JWKS refreshed too recently to refetch")
                return None

            logger.info(f"Unknown kid={kid}; refetching JWKS")
            await self.load_key_set()
            return resolve_key(self._keys, kid)
