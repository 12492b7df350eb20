"""
StackIt Backend — Account Service
===================================

What:  Registration, sign-in/out, password reset, profile lookup and the
       administrator's user management screen.
How:   Form rules are checked locally first (all field errors collected, no
       network call on failure). Credentials go to the Identity Gateway; the
       profile document `users/{uid}` goes to the Document Store; the
       Session Cache is kept in step through the gateway's auth events.

Registration rules:
    username          ≥ 3 chars, letters / digits / underscore
    email             something@domain.tld
    password          ≥ 8 chars with lower, upper and digit
    confirm_password  equal to password
    phone_number      settings.phone_number_pattern (default +91 and 10 digits)
    accept_terms      must be true

Administrative delete removes the profile document only. The identity
account still signs in, and every later request from it is answered with
AuthenticationError(redirect="/register").
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from stackit.exceptions import (
    AuthenticationError,
    BackendCallError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    raise_for_field_errors,
)
from stackit.gateways.document_store import SERVER_TIMESTAMP, DocumentStore
from stackit.gateways.identity import IdentityGateway
from stackit.services.session_cache import USERS_COLLECTION, Profile, Session, SessionCache

logger = logging.getLogger(__name__)

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PASSWORD_MIX_PATTERN = re.compile(r"(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")
SPECIAL_CHARACTERS = re.compile(r"[!@#$%^&*(),.?\":{}|<>]")

ROLES = ("user", "moderator", "admin")
USER_SORT_KEYS = ("username", "email", "phoneNumber", "role", "createdAt")


def password_strength(password: str) -> int:
    """Score 0-5: length ≥ 8, lower, upper, digit, special character."""
    checks = (
        len(password) >= 8,
        bool(re.search(r"[a-z]", password)),
        bool(re.search(r"[A-Z]", password)),
        bool(re.search(r"\d", password)),
        bool(SPECIAL_CHARACTERS.search(password)),
    )
    return sum(checks)


@dataclass(frozen=True)
class SignedIn:
    token: str
    profile: Profile


@dataclass(frozen=True)
class UserRecord:
    user_id: str
    data: Dict[str, Any]


class AccountService:
    def __init__(
        self,
        identity: IdentityGateway,
        document_store: DocumentStore,
        session_cache: SessionCache,
        phone_number_pattern: str = r"^\+91\d{10}$",
    ):
        self._identity = identity
        self._store = document_store
        self._sessions = session_cache
        self._phone_pattern = re.compile(phone_number_pattern)

    # ── Registration / Sign-in ─────────────────────────────────────────────

    def validate_registration(
        self,
        username: str,
        email: str,
        password: str,
        confirm_password: str,
        phone_number: str,
        accept_terms: bool,
    ) -> Dict[str, str]:
        errors: Dict[str, str] = {}

        if not username.strip():
            errors["username"] = "Username is required"
        elif len(username) < 3:
            errors["username"] = "Username must be at least 3 characters"
        elif not USERNAME_PATTERN.match(username):
            errors["username"] = "Username can only contain letters, numbers, and underscores"

        if not email.strip():
            errors["email"] = "Email is required"
        elif not EMAIL_PATTERN.match(email):
            errors["email"] = "Please enter a valid email address"

        if not password:
            errors["password"] = "Password is required"
        elif len(password) < 8:
            errors["password"] = "Password must be at least 8 characters"
        elif not PASSWORD_MIX_PATTERN.search(password):
            errors["password"] = "Password must contain uppercase, lowercase, and number"

        if password != confirm_password:
            errors["confirm_password"] = "Passwords do not match"

        if not phone_number.strip() or phone_number.strip() == "+91":
            errors["phone_number"] = "Phone number is required"
        elif not self._phone_pattern.match(phone_number):
            errors["phone_number"] = "Please enter a valid phone number (+91 followed by 10 digits)"

        if not accept_terms:
            errors["accept_terms"] = "You must accept the terms and conditions"

        return errors

    async def register(
        self,
        username: str,
        email: str,
        password: str,
        confirm_password: str,
        phone_number: str,
        accept_terms: bool,
    ) -> SignedIn:
        raise_for_field_errors(
            self.validate_registration(
                username, email, password, confirm_password, phone_number, accept_terms
            )
        )
        if await self._store.query_documents(USERS_COLLECTION, "username", username):
            raise ValidationError(message="This username is already taken", field="username")

        credential = await self._identity.create_account(email, password)
        try:
            await self._store.set_document(
                USERS_COLLECTION,
                credential.user_id,
                {
                    "username": username,
                    "email": email,
                    "phoneNumber": phone_number,
                    "role": "user",
                    "createdAt": SERVER_TIMESTAMP,
                },
            )
        except BackendCallError:
            logger.error("Identity account %s created but profile write failed", credential.user_id)
            raise BackendCallError(message="Registration failed. Please try again.", service="document_store")

        profile = await self._sessions.hydrate(credential.token, credential.user_id)
        if profile is None:
            raise BackendCallError(message="Registration failed. Please try again.", service="document_store")
        logger.info("Registered user %s (%s)", username, credential.user_id)
        return SignedIn(token=credential.token, profile=profile)

    async def login(self, email: str, password: str) -> SignedIn:
        errors: Dict[str, str] = {}
        if not email.strip():
            errors["email"] = "Email is required"
        elif not EMAIL_PATTERN.match(email):
            errors["email"] = "Please enter a valid email address"
        if not password:
            errors["password"] = "Password is required"
        raise_for_field_errors(errors)

        credential = await self._identity.sign_in(email, password)
        profile = self._sessions.read(credential.token)
        if profile is None:
            profile = await self._sessions.hydrate(credential.token, credential.user_id)
        if profile is None:
            raise AuthenticationError(
                message="User profile not found. Please register.",
                redirect="/register",
            )
        logger.info("User %s signed in", profile.username)
        return SignedIn(token=credential.token, profile=profile)

    async def logout(self, session: Session) -> None:
        await self._identity.sign_out(session.token)
        # The cache also clears through the sign-out event; clear here for
        # gateways that are not attached
        self._sessions.clear(session.token)
        logger.info("User %s signed out", session.username)

    async def request_password_reset(self, email: str) -> None:
        if not EMAIL_PATTERN.match(email or ""):
            raise ValidationError(message="Please enter a valid email address", field="email")
        await self._identity.send_password_reset(email)

    # ── Administration ─────────────────────────────────────────────────────

    @staticmethod
    def _require_admin(session: Session) -> None:
        if not session.is_admin:
            logger.warning("User %s attempted an admin operation", session.username)
            raise PermissionDeniedError()

    async def list_users(
        self,
        session: Session,
        search: Optional[str] = None,
        role: Optional[str] = None,
        sort_key: str = "username",
        direction: str = "asc",
    ) -> List[UserRecord]:
        self._require_admin(session)
        if sort_key not in USER_SORT_KEYS:
            raise ValidationError(message=f"Cannot sort users by '{sort_key}'", field="sort")
        if direction not in ("asc", "desc"):
            raise ValidationError(message="Sort direction must be 'asc' or 'desc'", field="direction")
        if role and role not in ROLES:
            raise ValidationError(message=f"Unknown role '{role}'", field="role")

        snapshots = await self._store.list_documents(USERS_COLLECTION, order_by="username")
        users = [UserRecord(user_id=s.id, data=s.data) for s in snapshots]

        if search:
            needle = search.lower()
            users = [
                u for u in users
                if needle in str(u.data.get("username", "")).lower()
                or needle in str(u.data.get("email", "")).lower()
                or needle in str(u.data.get("phoneNumber", "")).lower()
            ]
        if role:
            users = [u for u in users if u.data.get("role", "user") == role]

        users.sort(key=lambda u: str(u.data.get(sort_key) or ""), reverse=direction == "desc")
        return users

    async def delete_user(self, session: Session, user_id: str) -> None:
        self._require_admin(session)
        existed = await self._store.delete_document(USERS_COLLECTION, user_id)
        if not existed:
            raise NotFoundError(resource="user", resource_id=user_id)
        evicted = self._sessions.evict_user(user_id)
        logger.info(
            "Admin %s deleted profile %s (%d cached sessions dropped)",
            session.username,
            user_id,
            evicted,
        )
