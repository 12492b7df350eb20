"""
StackIt Backend — Session Cache
=================================

What:  Process-local cache of signed-in users' profile fields, keyed by the
       identity token of each session.
How:   Subscribed to the Identity Gateway's current-user-changed events:
       sign-in hydrates the profile from `users/{uid}`, sign-out clears it.
       Request handlers receive an explicit `Session` (token, user id,
       profile) built by `resolve()` instead of reading ambient state.

Lifecycle:
    sign-in ──▶ hydrate(token, uid) ──▶ profile cached (or nothing, if the
                                        profile document is missing)
    request ──▶ resolve(token)      ──▶ verify token, then Session | AuthenticationError
    sign-out ─▶ clear(token)            (unconditional)

Concurrency:
    No locking. Two hydrations for the same token race and the last writer
    wins; a clear racing a hydrate may leave either outcome.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from stackit.exceptions import AuthenticationError
from stackit.gateways.document_store import DocumentStore
from stackit.gateways.identity import AuthStateChange, IdentityGateway

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"

# Identity tokens are reissued hourly; older cache entries are unreachable
ID_TOKEN_LIFETIME_SECONDS = 3600.0


@dataclass(frozen=True)
class Profile:
    user_id: str
    username: str
    email: str
    phone_number: str
    role: str
    created_at: Any

    @classmethod
    def from_document(cls, user_id: str, data: Dict[str, Any]) -> "Profile":
        return cls(
            user_id=user_id,
            username=data.get("username", ""),
            email=data.get("email", ""),
            phone_number=data.get("phoneNumber", ""),
            role=data.get("role", "user"),
            created_at=data.get("createdAt"),
        )

    def to_session_json(self) -> Dict[str, Any]:
        """The persisted session layout: {username, email, phoneNumber, role, createdAt}."""
        return {
            "username": self.username,
            "email": self.email,
            "phoneNumber": self.phone_number,
            "role": self.role,
            "createdAt": self.created_at,
        }


@dataclass(frozen=True)
class Session:
    token: str
    user_id: str
    profile: Profile

    @property
    def username(self) -> str:
        return self.profile.username

    @property
    def is_admin(self) -> bool:
        return self.profile.role == "admin"


class SessionCache:
    def __init__(
        self,
        document_store: DocumentStore,
        max_age_seconds: float = ID_TOKEN_LIFETIME_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._store = document_store
        self._max_age = max_age_seconds
        self._clock = clock
        self._profiles: Dict[str, Profile] = {}
        self._hydrated_at: Dict[str, float] = {}
        self._unsubscribe: Optional[Callable[[], None]] = None

    def attach(self, identity: IdentityGateway) -> None:
        """Start following sign-in / sign-out events from `identity`."""
        self.detach()
        self._unsubscribe = identity.subscribe(self.on_auth_state_changed)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def on_auth_state_changed(self, change: AuthStateChange) -> None:
        if change.user_id is None:
            self.clear(change.token)
        else:
            await self.hydrate(change.token, change.user_id)

    async def hydrate(self, token: str, user_id: str) -> Optional[Profile]:
        """
        Return the cached profile for `token`, fetching `users/{user_id}` if
        nothing is cached yet. A missing profile document leaves the cache
        empty and returns None.
        """
        cached = self.read(token)
        if cached is not None and cached.user_id == user_id:
            return cached

        data = await self._store.get_document(USERS_COLLECTION, user_id)
        if data is None:
            logger.warning("User %s is signed in but has no profile document", user_id)
            self.clear(token)
            return None

        profile = Profile.from_document(user_id, data)
        self._profiles[token] = profile
        self._hydrated_at[token] = self._clock()
        logger.debug("Session hydrated for %s", profile.username)
        return profile

    def read(self, token: str) -> Optional[Profile]:
        hydrated_at = self._hydrated_at.get(token)
        if hydrated_at is not None and self._clock() - hydrated_at >= self._max_age:
            self.clear(token)
        return self._profiles.get(token)

    def clear(self, token: str) -> None:
        self._profiles.pop(token, None)
        self._hydrated_at.pop(token, None)

    def evict_user(self, user_id: str) -> int:
        """Drop every cached session of one user (after the profile is deleted)."""
        tokens = [t for t, p in self._profiles.items() if p.user_id == user_id]
        for token in tokens:
            self.clear(token)
        return len(tokens)

    def prune(self) -> int:
        """Drop entries older than the token lifetime; returns how many went."""
        cutoff = self._clock() - self._max_age
        stale = [t for t, at in self._hydrated_at.items() if at <= cutoff]
        for token in stale:
            self.clear(token)
        return len(stale)

    @property
    def size(self) -> int:
        return len(self._profiles)

    async def resolve(self, token: Optional[str], identity: IdentityGateway) -> Session:
        """
        Build the Session for a request.

        The token is verified with the Identity Gateway on every call, so an
        expired or revoked token stops authenticating even while its profile
        is cached. Only the profile lookup is cached.

        Raises:
            AuthenticationError: no token / invalid token (redirect /login), or
                a valid token whose user has no profile (redirect /register).
        """
        if not token:
            raise AuthenticationError()

        self.prune()
        try:
            user_id = await identity.verify_token(token)
        except AuthenticationError:
            self.clear(token)
            raise

        profile = await self.hydrate(token, user_id)
        if profile is None:
            raise AuthenticationError(
                message="Please complete your registration to continue",
                redirect="/register",
            )
        return Session(token=token, user_id=profile.user_id, profile=profile)
