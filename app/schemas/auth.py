"""Pydantic schemas for authentication requests and responses."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SigninRequest(BaseModel):
    """Credentials submitted to the sign-in endpoint.

    Fields default to empty so that missing values, like malformed ones, are
    reported by the auth service in the sign-in result shape instead of
    FastAPI's validation error format.
    """

    email: str = Field("", description="Account email address.")
    password: str = Field("", description="Account password (8-50 characters).")


class AuthUser(BaseModel):
    """User profile returned by the downstream API."""

    model_config = ConfigDict(extra="allow")

    id: str
    email: str
    first_name: str | None = None
    last_name: str | None = None
    email_verified: bool = False


class AuthResponse(BaseModel):
    """Tokens and user returned by a completed sign-in."""

    model_config = ConfigDict(extra="allow")

    access_token: str
    refresh_token: str
    user: AuthUser


class EmailVerificationResponse(BaseModel):
    """Returned instead of tokens when the account email is unverified."""

    model_config = ConfigDict(extra="allow")

    message: str
    email: str
    requires_verification: bool = True
    pending_authentication_token: str | None = None
    email_verification_id: str | None = None


class RefreshTokenResponse(BaseModel):
    """New token pair issued by the downstream refresh endpoint."""

    access_token: str
    refresh_token: str | None = None


class SigninResult(BaseModel):
    """Body of the BFF sign-in endpoint."""

    success: bool
    data: dict[str, Any] | None = Field(
        default=None,
        description="User (or verification) payload on success; tokens are never echoed.",
    )
    error: str | None = None
    rate_limited: bool | None = Field(default=None, serialization_alias="rateLimited")
    remaining_attempts: int | None = Field(default=None, serialization_alias="remainingAttempts")


class ActionResult(BaseModel):
    """Body of refresh/logout/maintenance endpoints."""

    success: bool
    error: str | None = None
    message: str | None = None
