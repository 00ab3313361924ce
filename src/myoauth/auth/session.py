"""Session and cookie access for the authentication flow."""

import json
import logging
import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from myoauth.config import Settings, get_settings

logger = logging.getLogger(__name__)

# Session attribute keys
ACCESS_TOKEN_KEY = "myoauth.access_token"
ACCESS_TOKEN_EXPIRATION_KEY = "myoauth.access_token.expiration"
IDENTITY_TOKEN_KEY = "myoauth.identity_token"
STATE_KEY = "myoauth.state"
CODE_VERIFIER_KEY = "myoauth.code_verifier"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStore(ABC):
    """Abstract base class for session storage.

    A session is a set of keyed attributes addressed by a session ID.
    """

    @abstractmethod
    async def exists(self, session_id: str) -> bool:
        pass

    @abstractmethod
    async def get(self, session_id: str, key: str) -> Any | None:
        pass

    @abstractmethod
    async def set(self, session_id: str, key: str, value: Any, ttl_seconds: int) -> None:
        pass

    @abstractmethod
    async def remove(self, session_id: str, key: str) -> None:
        pass

    @abstractmethod
    async def delete(self, session_id: str) -> None:
        pass


class InMemorySessionStore(SessionStore):
    """In-memory session store for development."""

    def __init__(self):
        self._sessions: dict[str, tuple[dict[str, Any], datetime]] = {}

    def _live(self, session_id: str) -> dict[str, Any] | None:
        if session_id not in self._sessions:
            return None

        attributes, expires_at = self._sessions[session_id]
        if _utcnow() > expires_at:
            del self._sessions[session_id]
            return None

        return attributes

    async def exists(self, session_id: str) -> bool:
        return self._live(session_id) is not None

    async def get(self, session_id: str, key: str) -> Any | None:
        attributes = self._live(session_id)
        if attributes is None:
            return None
        return attributes.get(key)

    async def set(self, session_id: str, key: str, value: Any, ttl_seconds: int) -> None:
        attributes = self._live(session_id)
        if attributes is None:
            attributes = {}
        attributes[key] = value
        self._sessions[session_id] = (attributes, _utcnow() + timedelta(seconds=ttl_seconds))

    async def remove(self, session_id: str, key: str) -> None:
        attributes = self._live(session_id)
        if attributes is not None:
            attributes.pop(key, None)

    async def delete(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)


class RedisSessionStore(SessionStore):
    """Redis-backed session store for production."""

    def __init__(self, redis_url: str):
        import redis.asyncio as redis
        self._redis = redis.from_url(redis_url, decode_responses=True)
        self._session_prefix = "myoauth:session:"

    def _key(self, session_id: str) -> str:
        return f"{self._session_prefix}{session_id}"

    async def exists(self, session_id: str) -> bool:
        return bool(await self._redis.exists(self._key(session_id)))

    async def get(self, session_id: str, key: str) -> Any | None:
        data = await self._redis.hget(self._key(session_id), key)
        if data is None:
            return None
        return json.loads(data)

    async def set(self, session_id: str, key: str, value: Any, ttl_seconds: int) -> None:
        redis_key = self._key(session_id)
        await self._redis.hset(redis_key, key, json.dumps(value))
        await self._redis.expire(redis_key, ttl_seconds)

    async def remove(self, session_id: str, key: str) -> None:
        await self._redis.hdel(self._key(session_id), key)

    async def delete(self, session_id: str) -> None:
        await self._redis.delete(self._key(session_id))


class Session:
    """Attribute access for a single session.

    A new session only reaches the store on its first write.
    """

    def __init__(self, store: SessionStore, session_id: str, ttl_seconds: int, is_new: bool = False):
        self._store = store
        self.id = session_id
        self.ttl_seconds = ttl_seconds
        self.is_new = is_new
        self.modified = False

    async def get(self, key: str) -> Any | None:
        if self.is_new and not self.modified:
            return None
        return await self._store.get(self.id, key)

    async def set(self, key: str, value: Any) -> None:
        await self._store.set(self.id, key, value, self.ttl_seconds)
        self.modified = True

    async def remove(self, key: str) -> None:
        await self._store.remove(self.id, key)
        self.modified = True


class SessionManager:
    """Opens sessions by ID, creating new ones when needed."""

    def __init__(self, settings: Settings | None = None, store: SessionStore | None = None):
        self.settings = settings or get_settings()

        if store is not None:
            self._store = store
        # Use Redis in production, in-memory for development
        elif self.settings.redis_url and self.settings.is_production:
            self._store = RedisSessionStore(self.settings.redis_url)
        else:
            logger.warning("Using in-memory session store - not suitable for production")
            self._store = InMemorySessionStore()

    @property
    def ttl_seconds(self) -> int:
        return self.settings.session_expire_minutes * 60

    def generate_session_id(self) -> str:
        """Generate a secure random session ID."""
        return secrets.token_urlsafe(32)

    async def open(self, session_id: str | None) -> Session:
        """Return the session for ``session_id``, or a new one if it is unknown or expired."""
        if session_id and await self._store.exists(session_id):
            return Session(self._store, session_id, self.ttl_seconds)

        return Session(self._store, self.generate_session_id(), self.ttl_seconds, is_new=True)

    async def delete(self, session_id: str) -> None:
        await self._store.delete(session_id)
        logger.info(f"Deleted session {session_id}")


@dataclass(frozen=True)
class OutboundCookie:
    name: str
    value: str
    path: str
    max_age: int
    httponly: bool
    secure: bool


class CookieJar:
    """Inbound cookies of a request plus the cookies to send back."""

    def __init__(self, inbound: Mapping[str, str] | None = None):
        self._inbound = dict(inbound or {})
        self.outbound: list[OutboundCookie] = []

    def get(self, name: str) -> str | None:
        return self._inbound.get(name)

    def set(
        self,
        name: str,
        value: str,
        *,
        max_age: int,
        path: str = "/",
        httponly: bool = True,
        secure: bool = True,
    ) -> None:
        self.outbound.append(OutboundCookie(name, value, path, max_age, httponly, secure))

    def delete(self, name: str, path: str = "/") -> None:
        self.set(name, "", max_age=0, path=path)
