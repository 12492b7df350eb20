"""
StackIt Backend — User Management Route Handlers
==================================================

What:  The administrator's user table: search, role filter, sort, delete.
Who:   Users whose profile role is "admin" (403 for everyone else).

Delete removes the `users/{uid}` profile only; the identity account is not
revoked.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from stackit.dependencies import get_account_service, require_admin
from stackit.schemas.account import UserItem, UserListResponse
from stackit.schemas.common import ErrorResponse, MessageResponse
from stackit.services.accounts import AccountService
from stackit.services.session_cache import Session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["Admin"])


@router.get(
    "/users",
    response_model=UserListResponse,
    responses={403: {"description": "Administrator access required", "model": ErrorResponse}},
    summary="List user profiles",
)
async def list_users(
    search: Optional[str] = Query(default=None, description="Matches username, email or phone"),
    role: Optional[str] = Query(default=None, description="user | moderator | admin"),
    sort: str = Query(default="username", description="username | email | phoneNumber | role | createdAt"),
    direction: str = Query(default="asc", description="asc | desc"),
    session: Session = Depends(require_admin),
    accounts: AccountService = Depends(get_account_service),
) -> UserListResponse:
    users = await accounts.list_users(session, search=search, role=role, sort_key=sort, direction=direction)
    return UserListResponse(
        users=[UserItem(id=u.user_id, **u.data) for u in users],
        total_count=len(users),
    )


@router.delete(
    "/users/{user_id}",
    response_model=MessageResponse,
    responses={
        403: {"description": "Administrator access required", "model": ErrorResponse},
        404: {"description": "No such user", "model": ErrorResponse},
    },
    summary="Delete a user profile",
)
async def delete_user(
    user_id: str,
    session: Session = Depends(require_admin),
    accounts: AccountService = Depends(get_account_service),
) -> MessageResponse:
    await accounts.delete_user(session, user_id)
    return MessageResponse(message="User deleted")
