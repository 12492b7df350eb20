"""
StackIt Backend — Account Service Tests
=========================================

What:  Tests for registration, sign-in/out, password reset, password
       strength and the administrator's user management.
How:   FakeIdentityGateway + in-memory document store from conftest;
       AsyncMock where a test only needs to prove a call was not made.
"""

from unittest.mock import AsyncMock

import pytest

from stackit.exceptions import (
    AuthenticationError,
    BackendCallError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from stackit.services.accounts import AccountService, password_strength
from stackit.services.session_cache import USERS_COLLECTION

VALID = {
    "username": "bob_smith",
    "email": "bob@example.com",
    "password": "Passw0rd",
    "confirm_password": "Passw0rd",
    "phone_number": "+919812345678",
    "accept_terms": True,
}


@pytest.fixture
def accounts(identity, document_store, session_cache):
    return AccountService(identity, document_store, session_cache)


# ── Registration ───────────────────────────────────────────────────────────


class TestRegistrationRules:

    def test_valid_form_has_no_errors(self, accounts):
        assert accounts.validate_registration(**VALID) == {}

    @pytest.mark.parametrize(
        "field_name, value, expected",
        [
            ("username", "ab", "Username must be at least 3 characters"),
            ("username", "bob smith", "Username can only contain letters, numbers, and underscores"),
            ("email", "bob@example", "Please enter a valid email address"),
            ("password", "short1A", "Password must be at least 8 characters"),
            ("password", "alllowercase1", "Password must contain uppercase, lowercase, and number"),
            ("phone_number", "+91", "Phone number is required"),
            ("phone_number", "+9112345", "Please enter a valid phone number (+91 followed by 10 digits)"),
        ],
    )
    def test_field_rules(self, accounts, field_name, value, expected):
        form = dict(VALID, **{field_name: value})
        if field_name == "password":
            form["confirm_password"] = value
        assert accounts.validate_registration(**form)[field_name] == expected

    def test_mismatched_confirmation(self, accounts):
        errors = accounts.validate_registration(**dict(VALID, confirm_password="Passw0rd!"))
        assert errors == {"confirm_password": "Passwords do not match"}

    def test_terms_must_be_accepted(self, accounts):
        errors = accounts.validate_registration(**dict(VALID, accept_terms=False))
        assert "accept_terms" in errors

    def test_custom_phone_pattern(self, identity, document_store, session_cache):
        service = AccountService(identity, document_store, session_cache, phone_number_pattern=r"^\+1\d{10}$")
        errors = service.validate_registration(**dict(VALID, phone_number="+15551234567"))
        assert "phone_number" not in errors


class TestRegister:

    @pytest.mark.asyncio
    async def test_register_writes_profile_and_signs_in(self, accounts, document_store):
        signed_in = await accounts.register(**VALID)

        stored = document_store.collections[USERS_COLLECTION][signed_in.profile.user_id]
        assert stored["username"] == "bob_smith"
        assert stored["phoneNumber"] == "+919812345678"
        assert stored["role"] == "user"
        assert isinstance(stored["createdAt"], str)
        assert signed_in.profile.username == "bob_smith"

    @pytest.mark.asyncio
    async def test_invalid_form_makes_no_identity_call(self, document_store, session_cache):
        identity = AsyncMock()
        service = AccountService(identity, document_store, session_cache)

        with pytest.raises(ValidationError) as exc_info:
            await service.register(**dict(VALID, email="nope"))

        assert exc_info.value.context["errors"] == {"email": "Please enter a valid email address"}
        identity.create_account.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_duplicate_email(self, accounts):
        await accounts.register(**VALID)
        with pytest.raises(ValidationError) as exc_info:
            await accounts.register(**dict(VALID, username="bob_two"))
        assert exc_info.value.field == "email"

    @pytest.mark.asyncio
    async def test_taken_username_refused_before_account_is_created(self, accounts, alice, identity):
        with pytest.raises(ValidationError) as exc_info:
            await accounts.register(**dict(VALID, username="alice", email="mallory@example.com"))

        assert exc_info.value.field == "username"
        assert "mallory@example.com" not in identity.accounts

    @pytest.mark.asyncio
    async def test_profile_write_failure(self, accounts, document_store):
        document_store.fail_on.add("set")
        with pytest.raises(BackendCallError, match="Registration failed"):
            await accounts.register(**VALID)


# ── Sign-in / Sign-out ─────────────────────────────────────────────────────


class TestLogin:

    @pytest.mark.asyncio
    async def test_login(self, accounts, alice):
        signed_in = await accounts.login("alice@example.com", "Passw0rd!")
        assert signed_in.profile.username == "alice"

    @pytest.mark.asyncio
    async def test_wrong_password(self, accounts, alice):
        with pytest.raises(AuthenticationError, match="Invalid email or password"):
            await accounts.login("alice@example.com", "wrong")

    @pytest.mark.asyncio
    async def test_missing_fields(self, accounts):
        with pytest.raises(ValidationError) as exc_info:
            await accounts.login("", "")
        assert set(exc_info.value.context["errors"]) == {"email", "password"}

    @pytest.mark.asyncio
    async def test_account_without_profile_redirects_to_register(self, accounts, identity):
        identity.add_account("ghost@example.com", "Passw0rd!")
        with pytest.raises(AuthenticationError) as exc_info:
            await accounts.login("ghost@example.com", "Passw0rd!")
        assert exc_info.value.redirect == "/register"

    @pytest.mark.asyncio
    async def test_logout_clears_session(self, accounts, session_cache, identity, alice):
        session = await session_cache.resolve(alice.token, identity)
        await accounts.logout(session)

        assert session_cache.read(alice.token) is None
        with pytest.raises(AuthenticationError):
            await session_cache.resolve(alice.token, identity)

    @pytest.mark.asyncio
    async def test_password_reset(self, accounts, identity):
        await accounts.request_password_reset("alice@example.com")
        assert identity.reset_requests == ["alice@example.com"]

    @pytest.mark.asyncio
    async def test_password_reset_needs_valid_email(self, accounts):
        with pytest.raises(ValidationError):
            await accounts.request_password_reset("alice")


class TestPasswordStrength:

    @pytest.mark.parametrize(
        "password, score",
        [("", 0), ("abc", 1), ("abcdefgh", 2), ("Abcdefgh", 3), ("Abcdefg1", 4), ("Abcdef1!", 5)],
    )
    def test_scores(self, password, score):
        assert password_strength(password) == score


# ── Administration ─────────────────────────────────────────────────────────


class TestUserManagement:

    @pytest.mark.asyncio
    async def test_non_admin_refused(self, accounts, alice):
        with pytest.raises(PermissionDeniedError):
            await accounts.list_users(alice)

    @pytest.mark.asyncio
    async def test_list_search_and_role_filter(self, accounts, alice, admin):
        users = await accounts.list_users(admin)
        assert [u.data["username"] for u in users] == ["alice", "root_admin"]

        admins = await accounts.list_users(admin, role="admin")
        assert [u.user_id for u in admins] == ["uid-root_admin"]

        found = await accounts.list_users(admin, search="ALICE@")
        assert [u.user_id for u in found] == ["uid-alice"]

    @pytest.mark.asyncio
    async def test_sort_descending(self, accounts, alice, admin):
        users = await accounts.list_users(admin, sort_key="username", direction="desc")
        assert [u.data["username"] for u in users] == ["root_admin", "alice"]

    @pytest.mark.asyncio
    async def test_bad_sort_key(self, accounts, admin):
        with pytest.raises(ValidationError):
            await accounts.list_users(admin, sort_key="password")

    @pytest.mark.asyncio
    async def test_delete_removes_profile_and_cached_sessions(
        self, accounts, session_cache, identity, document_store, alice, admin
    ):
        await session_cache.resolve(alice.token, identity)

        await accounts.delete_user(admin, alice.user_id)

        assert alice.user_id not in document_store.collections[USERS_COLLECTION]
        with pytest.raises(AuthenticationError) as exc_info:
            await session_cache.resolve(alice.token, identity)
        assert exc_info.value.redirect == "/register"

    @pytest.mark.asyncio
    async def test_delete_unknown_user(self, accounts, admin):
        with pytest.raises(NotFoundError):
            await accounts.delete_user(admin, "uid-nobody")
