"""
Caller identity and access lists.

Bearer tokens are verified by the OAuth provider's userinfo endpoint; only the
resulting email is used here. Allowed and admin users come from JSON blobs in
the object store, each cached for ``USER_LIST_CACHE_TTL`` seconds, with the
configured emergency lists standing in when a blob is missing.
"""

import json
from dataclasses import dataclass
from typing import Callable, FrozenSet, Iterable, Optional

import httpx

from shared.app_logging.logger import get_logger
from shared.storage.object_store import ObjectNotFoundError, ObjectStore, ObjectStoreError
from services.articles.app.cache import TTLCache

logger = get_logger("articles.auth")


class AuthenticationError(Exception):
    """Credentials are missing or the token was rejected."""


@dataclass
class UserIdentity:
    email: str
    name: str = ""
    picture: str = ""


class IdentityVerifier:
    def __init__(self, userinfo_url: str, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        self.userinfo_url = userinfo_url
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def verify(self, token: str) -> UserIdentity:
        try:
            response = await self._client.get(
                self.userinfo_url, headers={"Authorization": f"Bearer {token}"}
            )
        except httpx.HTTPError as e:
            logger.error(f"Token verification request failed: {e}")
            raise AuthenticationError("Token verification unavailable") from e

        if response.status_code != 200:
            logger.info(f"Token rejected by identity provider ({response.status_code})")
            raise AuthenticationError("Invalid or expired token")

        info = response.json()
        email = (info.get("email") or "").strip().lower()
        if not email:
            raise AuthenticationError("Token carries no email")
        if info.get("email_verified") is False:
            raise AuthenticationError("Email address is not verified")
        return UserIdentity(email=email, name=info.get("name", ""), picture=info.get("picture", ""))

    async def close(self) -> None:
        await self._client.aclose()


def _parse_user_list(data: bytes) -> FrozenSet[str]:
    doc = json.loads(data)
    if isinstance(doc, dict):
        doc = doc.get("users", doc.get("emails", []))
    if not isinstance(doc, list):
        raise ValueError("user list must be a JSON array or {\"users\": [...]}")
    return frozenset(str(e).strip().lower() for e in doc if str(e).strip())


class AccessLists:
    """Allowed-user and admin-user sets, cached separately."""

    def __init__(
        self,
        store: ObjectStore,
        allowed_key: str,
        admin_key: str,
        emergency_allowlist: Iterable[str] = (),
        emergency_admins: Iterable[str] = (),
        ttl: float = 300.0,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.store = store
        self.allowed_key = allowed_key
        self.admin_key = admin_key
        self.emergency_allowlist = frozenset(e.lower() for e in emergency_allowlist)
        self.emergency_admins = frozenset(e.lower() for e in emergency_admins)
        cache_kwargs = {"clock": clock} if clock else {}
        self._allowed: TTLCache[FrozenSet[str]] = TTLCache(ttl, **cache_kwargs)
        self._admins: TTLCache[FrozenSet[str]] = TTLCache(ttl, **cache_kwargs)

    async def _load(self, cache: TTLCache, key: str, fallback: FrozenSet[str]) -> FrozenSet[str]:
        users = cache.get(key)
        if users is not None:
            return users
        try:
            users = _parse_user_list(await self.store.read(key))
        except ObjectNotFoundError:
            logger.warning(f"User list {key} missing, using emergency list")
            users = fallback
        except ValueError as e:
            logger.error(f"User list {key} is malformed, using emergency list: {e}")
            users = fallback
        except ObjectStoreError as e:
            # Not cached, so the next request tries the store again
            logger.error(f"Could not load user list {key}, using emergency list: {e}")
            return fallback
        cache.set(key, users)
        return users

    async def allowed_users(self) -> FrozenSet[str]:
        return await self._load(self._allowed, self.allowed_key, self.emergency_allowlist)

    async def admin_users(self) -> FrozenSet[str]:
        return await self._load(self._admins, self.admin_key, self.emergency_admins)

    async def is_admin(self, email: str) -> bool:
        return email.lower() in await self.admin_users()

    async def is_allowed(self, email: str) -> bool:
        # Admins are always allowed in
        email = email.lower()
        return email in await self.allowed_users() or await self.is_admin(email)
