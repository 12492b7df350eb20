"""
StackIt Backend — Account Schemas
===================================

What:  Request/response models for /api/auth, /api/profile and /api/admin.
Why:   Pydantic only checks shape here (types, presence). The form rules
       (username charset, password mix, phone format, ...) live in
       AccountService so every field error comes back in one response.
"""

from typing import Any, List, Optional

from pydantic import BaseModel, Field


# ══════════════════════════════════════════════════════════════════════════
# Requests
# ══════════════════════════════════════════════════════════════════════════


class RegisterRequest(BaseModel):
    username: str = Field(default="", description="3+ characters: letters, numbers, underscore")
    email: str = Field(default="")
    password: str = Field(default="", description="8+ characters with upper, lower and digit")
    confirm_password: str = Field(default="")
    phone_number: str = Field(default="", description="+91 followed by 10 digits")
    accept_terms: bool = Field(default=False)


class LoginRequest(BaseModel):
    email: str = Field(default="")
    password: str = Field(default="")


class PasswordResetRequest(BaseModel):
    email: str = Field(default="")


# ══════════════════════════════════════════════════════════════════════════
# Responses
# ══════════════════════════════════════════════════════════════════════════


class ProfileResponse(BaseModel):
    """
    The session layout clients persist for the signed-in user:
    {username, email, phoneNumber, role, createdAt}.
    """
    username: str
    email: str
    phoneNumber: str
    role: str
    createdAt: Optional[Any] = None


class AuthResponse(BaseModel):
    token: str = Field(description="Identity token; send as 'Authorization: Bearer <token>'")
    user_id: str
    profile: ProfileResponse


class PasswordStrengthResponse(BaseModel):
    score: int = Field(ge=0, le=5)
    label: str


class UserItem(BaseModel):
    id: str
    username: str = ""
    email: str = ""
    phoneNumber: str = ""
    role: str = "user"
    createdAt: Optional[Any] = None


class UserListResponse(BaseModel):
    users: List[UserItem]
    total_count: int
