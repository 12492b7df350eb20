"""
StackIt Backend — Account Route Handlers
==========================================

What:  Registration, sign-in, sign-out, password reset, password strength
       and the signed-in user's profile.
How:   Thin handlers: body → AccountService → response model. Field errors
       come back as 400 with `details.errors`; bad credentials as 401.

Client routes these back:
    /register, /login, /reset-password, /profile
"""

import logging

from fastapi import APIRouter, Depends

from stackit.dependencies import get_account_service, get_current_session
from stackit.schemas.account import (
    AuthResponse,
    LoginRequest,
    PasswordResetRequest,
    PasswordStrengthResponse,
    ProfileResponse,
    RegisterRequest,
)
from stackit.schemas.common import ErrorResponse, MessageResponse
from stackit.services.accounts import AccountService, SignedIn, password_strength
from stackit.services.session_cache import Session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Accounts"])

STRENGTH_LABELS = ("Very Weak", "Weak", "Fair", "Good", "Strong")


def _auth_response(signed_in: SignedIn) -> AuthResponse:
    return AuthResponse(
        token=signed_in.token,
        user_id=signed_in.profile.user_id,
        profile=ProfileResponse(**signed_in.profile.to_session_json()),
    )


@router.post(
    "/auth/register",
    status_code=201,
    response_model=AuthResponse,
    responses={
        400: {"description": "A form field is invalid", "model": ErrorResponse},
        502: {"description": "Identity or document store failure", "model": ErrorResponse},
    },
    summary="Create an account and sign in",
)
async def register(
    body: RegisterRequest,
    accounts: AccountService = Depends(get_account_service),
) -> AuthResponse:
    signed_in = await accounts.register(
        username=body.username,
        email=body.email,
        password=body.password,
        confirm_password=body.confirm_password,
        phone_number=body.phone_number,
        accept_terms=body.accept_terms,
    )
    return _auth_response(signed_in)


@router.post(
    "/auth/login",
    response_model=AuthResponse,
    responses={
        400: {"description": "Email or password missing/invalid", "model": ErrorResponse},
        401: {"description": "Wrong credentials, or no profile (redirect /register)", "model": ErrorResponse},
    },
    summary="Sign in with email and password",
)
async def login(
    body: LoginRequest,
    accounts: AccountService = Depends(get_account_service),
) -> AuthResponse:
    return _auth_response(await accounts.login(body.email, body.password))


@router.post("/auth/logout", response_model=MessageResponse, summary="Sign out")
async def logout(
    session: Session = Depends(get_current_session),
    accounts: AccountService = Depends(get_account_service),
) -> MessageResponse:
    await accounts.logout(session)
    return MessageResponse(message="Signed out")


@router.post(
    "/auth/reset-password",
    response_model=MessageResponse,
    summary="Send a password reset email",
)
async def reset_password(
    body: PasswordResetRequest,
    accounts: AccountService = Depends(get_account_service),
) -> MessageResponse:
    await accounts.request_password_reset(body.email)
    return MessageResponse(message="Password reset email sent. Check your inbox.")


@router.post(
    "/auth/password-strength",
    response_model=PasswordStrengthResponse,
    summary="Score a candidate password (0-5)",
)
async def check_password_strength(body: LoginRequest) -> PasswordStrengthResponse:
    score = password_strength(body.password)
    label = STRENGTH_LABELS[score - 1] if score else STRENGTH_LABELS[0]
    return PasswordStrengthResponse(score=score, label=label)


@router.get(
    "/profile",
    response_model=ProfileResponse,
    responses={401: {"description": "Not signed in", "model": ErrorResponse}},
    summary="The signed-in user's profile",
)
async def profile(session: Session = Depends(get_current_session)) -> ProfileResponse:
    return ProfileResponse(**session.profile.to_session_json())
