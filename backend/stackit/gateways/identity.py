"""
StackIt Backend — Identity Gateway
====================================

What:  Account creation, sign-in, sign-out, password reset and token checks,
       delegated to the hosted identity service.
How:   `FirebaseIdentityGateway` calls the Identity Toolkit REST API with the
       project's web API key. The returned ID token is what clients send back
       as `Authorization: Bearer <token>`.

Current-user-changed subscription:
    Listeners registered with `subscribe()` receive an AuthStateChange after
    every successful sign-in / account creation (user_id set) and every
    sign-out (user_id None). The SessionCache is the main subscriber.

Error mapping:
    EMAIL_EXISTS                          → ValidationError(field="email")
    WEAK_PASSWORD                         → ValidationError(field="password")
    INVALID_LOGIN_CREDENTIALS / INVALID_PASSWORD / EMAIL_NOT_FOUND /
    INVALID_ID_TOKEN / USER_NOT_FOUND / USER_DISABLED → AuthenticationError
    anything else / transport failure     → BackendCallError(service="identity")
"""

import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

import httpx

from stackit.exceptions import AuthenticationError, BackendCallError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credential:
    user_id: str
    token: str
    email: str


@dataclass(frozen=True)
class AuthStateChange:
    user_id: Optional[str]
    token: str


AuthStateListener = Callable[[AuthStateChange], Awaitable[None]]


class IdentityGateway(ABC):
    """
    Abstract identity service.

    Subclasses implement the network calls; subscription bookkeeping and
    sign-out notification live here.
    """

    def __init__(self) -> None:
        self._listeners: List[AuthStateListener] = []

    def subscribe(self, listener: AuthStateListener) -> Callable[[], None]:
        """Register a current-user-changed listener; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _notify(self, change: AuthStateChange) -> None:
        for listener in list(self._listeners):
            await listener(change)

    @abstractmethod
    async def create_account(self, email: str, password: str) -> Credential:
        ...

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> Credential:
        ...

    @abstractmethod
    async def send_password_reset(self, email: str) -> None:
        ...

    @abstractmethod
    async def verify_token(self, token: str) -> str:
        """Return the user id the token belongs to; AuthenticationError if invalid."""
        ...

    async def sign_out(self, token: str) -> None:
        # ID tokens are bearer tokens; signing out means forgetting the token
        await self._notify(AuthStateChange(user_id=None, token=token))


class FirebaseIdentityGateway(IdentityGateway):
    """Identity Toolkit REST client (accounts:* endpoints)."""

    CREDENTIAL_ERRORS = {
        "INVALID_LOGIN_CREDENTIALS",
        "INVALID_PASSWORD",
        "EMAIL_NOT_FOUND",
        "INVALID_ID_TOKEN",
        "USER_NOT_FOUND",
        "USER_DISABLED",
        "TOKEN_EXPIRED",
    }

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://identitytoolkit.googleapis.com/v1",
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__()
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._http_client = http_client

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
        else:
            async with httpx.AsyncClient() as client:
                yield client

    @staticmethod
    def _error_code(response: httpx.Response) -> str:
        try:
            message = response.json().get("error", {}).get("message", "")
        except ValueError:
            return ""
        # e.g. "WEAK_PASSWORD : Password should be at least 6 characters"
        return message.split(" ", 1)[0].strip()

    async def _call(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}/accounts:{endpoint}"
        try:
            async with self._client() as client:
                response = await client.post(url, params={"key": self.api_key}, json=payload)
        except httpx.HTTPError as e:
            logger.error("Identity call %s failed: %s", endpoint, str(e))
            raise BackendCallError(
                message="The sign-in service is unavailable. Please try again.",
                service="identity",
                context={"endpoint": endpoint},
            )

        if response.is_success:
            return response.json()

        code = self._error_code(response)
        logger.warning("Identity call %s rejected: %s (%d)", endpoint, code, response.status_code)
        if code == "EMAIL_EXISTS":
            raise ValidationError(message="An account with this email already exists", field="email")
        if code == "WEAK_PASSWORD":
            raise ValidationError(message="Password is too weak", field="password")
        if code in self.CREDENTIAL_ERRORS:
            raise AuthenticationError(message="Invalid email or password")
        raise BackendCallError(
            message="The sign-in service rejected the request. Please try again.",
            service="identity",
            context={"endpoint": endpoint, "code": code},
        )

    async def create_account(self, email: str, password: str) -> Credential:
        body = await self._call(
            "signUp",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        credential = Credential(user_id=body["localId"], token=body["idToken"], email=body.get("email", email))
        logger.info("Created identity account %s", credential.user_id)
        await self._notify(AuthStateChange(user_id=credential.user_id, token=credential.token))
        return credential

    async def sign_in(self, email: str, password: str) -> Credential:
        body = await self._call(
            "signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        credential = Credential(user_id=body["localId"], token=body["idToken"], email=body.get("email", email))
        await self._notify(AuthStateChange(user_id=credential.user_id, token=credential.token))
        return credential

    async def send_password_reset(self, email: str) -> None:
        await self._call("sendOobCode", {"requestType": "PASSWORD_RESET", "email": email})
        logger.info("Password reset email requested")

    async def verify_token(self, token: str) -> str:
        body = await self._call("lookup", {"idToken": token})
        users = body.get("users") or []
        if not users:
            raise AuthenticationError(message="Your session has expired. Please sign in again.")
        return users[0]["localId"]
