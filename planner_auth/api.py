"""
API router and Pydantic models for the Planner Authentication service.

This module provides the ``/api/auth`` FastAPI router and the request models
validating its JSON bodies. Every route answers with the uniform envelope from
``planner_auth.responses``; failures are raised as ``AuthError`` subclasses and
rendered by the application's exception handlers. Handlers are plain functions
run in FastAPI's threadpool, since hashing and database calls block.
"""
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, EmailStr, Field, HttpUrl, field_validator

from planner_auth.auth import TokenLifecycleManager
from planner_auth.config.settings import settings
from planner_auth.dependencies import (Principal, auth_rate_limiter, get_current_principal,
                                       get_token_manager, get_verification_manager,
                                       require_role)
from planner_auth.responses import success
from planner_auth.verification import VerificationTokenManager

# Create API router
router = APIRouter(tags=["authentication"])

RESET_REQUESTED_MESSAGE = "If an account exists for this email, a password reset link has been sent"


class CamelModel(BaseModel):
    """Request body accepting camelCase keys."""
    model_config = ConfigDict(populate_by_name=True)


def _clean_display_name(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    if len(v) < 2:
        raise ValueError("Display name must be at least 2 characters long")
    return v


class RegisterRequest(CamelModel):
    """Request model for user registration."""
    email: EmailStr = Field(..., description="Email address")
    password: str = Field(..., min_length=settings.PASSWORD_MIN_LENGTH, description="Password")
    display_name: Optional[str] = Field(None, alias="displayName", max_length=100)

    @field_validator("display_name")
    @classmethod
    def check_display_name(cls, v: Optional[str]) -> Optional[str]:
        return _clean_display_name(v)


class LoginRequest(CamelModel):
    """Request model for user login."""
    email: EmailStr = Field(..., description="Email address")
    password: str = Field(..., min_length=1, description="Password")


class RefreshTokenRequest(CamelModel):
    """Request model for token refresh."""
    refresh_token: str = Field(..., alias="refreshToken", min_length=1)


class LogoutRequest(CamelModel):
    """Request model for logout."""
    refresh_token: Optional[str] = Field(None, alias="refreshToken")


class EmailRequest(CamelModel):
    """Request model carrying only an email."""
    email: EmailStr


class ResetPasswordConfirmRequest(CamelModel):
    """Request model for completing a password reset."""
    email: EmailStr
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=settings.PASSWORD_MIN_LENGTH, description="Password")


class VerifyEmailConfirmRequest(CamelModel):
    """Request model for completing email verification."""
    email: EmailStr
    token: str = Field(..., min_length=1)


class ChangePasswordRequest(CamelModel):
    """Request model for password change."""
    current_password: str = Field(..., alias="currentPassword", min_length=1)
    new_password: str = Field(..., alias="newPassword", min_length=settings.PASSWORD_MIN_LENGTH)


class ProfileUpdateRequest(CamelModel):
    """Request model for profile updates."""
    display_name: Optional[str] = Field(None, alias="displayName", max_length=100)
    photo_url: Optional[HttpUrl] = Field(None, alias="photoURL")

    @field_validator("display_name")
    @classmethod
    def check_display_name(cls, v: Optional[str]) -> Optional[str]:
        return _clean_display_name(v)


def _token_body(tokens: dict) -> dict:
    return {"accessToken": tokens["access_token"], "refreshToken": tokens["refresh_token"]}


@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(auth_rate_limiter)],
    summary="Register a new user",
)
def register(
    body: RegisterRequest,
    manager: TokenLifecycleManager = Depends(get_token_manager),
):
    """Create an account and sign it in."""
    user_id, tokens = manager.register(body.email, body.password, body.display_name)
    return success({"uid": user_id, **_token_body(tokens)}, "User registered successfully")


@router.post(
    "/login",
    dependencies=[Depends(auth_rate_limiter)],
    summary="Authenticate user and get tokens",
)
def login(
    body: LoginRequest,
    manager: TokenLifecycleManager = Depends(get_token_manager),
):
    """Exchange email and password for an access/refresh pair."""
    user, tokens = manager.login(body.email, body.password)
    return success({"user": user, **_token_body(tokens)}, "Login successful")


@router.post("/logout", summary="Logout user")
def logout(
    body: Optional[LogoutRequest] = None,
    principal: Principal = Depends(get_current_principal),
    manager: TokenLifecycleManager = Depends(get_token_manager),
):
    """Revoke the supplied refresh token of the caller."""
    manager.logout(body.refresh_token if body else None, principal.subject_id)
    return success({}, "Logged out successfully")


@router.post("/logout-all", summary="Logout from all devices")
def logout_all(
    principal: Principal = Depends(get_current_principal),
    manager: TokenLifecycleManager = Depends(get_token_manager),
):
    """Revoke every refresh token of the caller."""
    revoked = manager.logout_all(principal.subject_id)
    return success({"revoked": revoked}, "Logged out from all devices")


@router.post(
    "/refresh-token",
    dependencies=[Depends(auth_rate_limiter)],
    summary="Rotate refresh token",
)
def refresh_token(
    body: RefreshTokenRequest,
    manager: TokenLifecycleManager = Depends(get_token_manager),
):
    """Exchange a refresh token for a new pair; the old one stops working."""
    tokens = manager.refresh(body.refresh_token)
    return success(_token_body(tokens), "Token refreshed successfully")


@router.post("/check-email", summary="Check whether an email is registered")
def check_email(
    body: EmailRequest,
    manager: TokenLifecycleManager = Depends(get_token_manager),
):
    return success({"exists": manager.check_email(body.email)})


@router.post(
    "/reset-password",
    dependencies=[Depends(auth_rate_limiter)],
    summary="Request a password reset",
)
def reset_password(
    body: EmailRequest,
    manager: VerificationTokenManager = Depends(get_verification_manager),
):
    """Always answers the same way, whether or not the email is registered."""
    manager.initiate_reset(body.email)
    return success({}, RESET_REQUESTED_MESSAGE)


@router.post(
    "/reset-password/confirm",
    dependencies=[Depends(auth_rate_limiter)],
    summary="Complete a password reset",
)
def reset_password_confirm(
    body: ResetPasswordConfirmRequest,
    manager: VerificationTokenManager = Depends(get_verification_manager),
):
    manager.confirm_reset(body.email, body.token, body.password)
    return success({}, "Password has been reset successfully")


@router.post("/verify-email", summary="Request email verification")
def verify_email(
    principal: Principal = Depends(get_current_principal),
    manager: VerificationTokenManager = Depends(get_verification_manager),
):
    token = manager.initiate_verification(principal.subject_id)
    if token is None:
        return success({}, "Email is already verified")
    return success({}, "Verification email sent")


@router.post("/verify-email/confirm", summary="Complete email verification")
def verify_email_confirm(
    body: VerifyEmailConfirmRequest,
    manager: VerificationTokenManager = Depends(get_verification_manager),
):
    manager.confirm_verification(body.email, body.token)
    return success({}, "Email verified successfully")


@router.post("/change-password", summary="Change password")
def change_password(
    body: ChangePasswordRequest,
    principal: Principal = Depends(get_current_principal),
    manager: TokenLifecycleManager = Depends(get_token_manager),
):
    """Change the caller's password; every session must sign in again."""
    manager.change_password(principal.subject_id, body.current_password, body.new_password)
    return success({}, "Password changed successfully")


@router.get("/me", summary="Current user profile")
def get_current_user(
    principal: Principal = Depends(get_current_principal),
    manager: TokenLifecycleManager = Depends(get_token_manager),
):
    return success(manager.get_profile(principal.subject_id))


@router.put("/profile", summary="Update profile")
def update_profile(
    body: ProfileUpdateRequest,
    principal: Principal = Depends(get_current_principal),
    manager: TokenLifecycleManager = Depends(get_token_manager),
):
    manager.update_profile(
        principal.subject_id,
        display_name=body.display_name,
        photo_url=str(body.photo_url) if body.photo_url is not None else None,
    )
    return success({}, "Profile updated successfully")


@router.delete("/account", summary="Delete account")
def delete_account(
    principal: Principal = Depends(get_current_principal),
    manager: TokenLifecycleManager = Depends(get_token_manager),
):
    manager.delete_account(principal.subject_id)
    return success({}, "Account deleted successfully")


@router.delete("/users/{user_id}/sessions", summary="Revoke a user's sessions")
def revoke_user_sessions(
    user_id: str,
    admin: Principal = Depends(require_role("admin")),
    manager: TokenLifecycleManager = Depends(get_token_manager),
):
    """Admin only: revoke every refresh token of another account."""
    revoked = manager.logout_all(user_id)
    return success({"revoked": revoked}, "Sessions revoked")
