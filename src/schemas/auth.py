"""Authentication schemas for JWT tokens and user context."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

ADMIN_ROLE = "admin"


class UserContext(BaseModel):
    """Authenticated user context extracted from JWT token.

    Populated by the auth dependency from the validated JWT.
    """

    model_config = ConfigDict(from_attributes=True)

    user_id: str = Field(description="Unique identifier for the user (from JWT sub claim)")
    email: str | None = Field(default=None, description="User's email address if available")
    role: str | None = Field(default=None, description="Application role (e.g., 'customer', 'admin')")

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


class TokenPayload(BaseModel):
    """JWT token payload structure for Supabase tokens."""

    model_config = ConfigDict(from_attributes=True)

    sub: str = Field(description="Subject - the user's UUID")
    email: str | None = Field(default=None, description="User's email address")
    role: str | None = Field(default=None, description="Postgres role claim")
    exp: int = Field(description="Expiration timestamp (Unix epoch)")
    iat: int = Field(description="Issued at timestamp (Unix epoch)")
    aud: str | None = Field(default=None, description="Audience - intended recipient")
    iss: str | None = Field(default=None, description="Issuer - token issuer URL")
    app_metadata: dict[str, Any] = Field(default_factory=dict, description="Server-controlled user metadata")

    @property
    def expiration_datetime(self) -> datetime:
        """Get expiration as datetime object."""
        return datetime.fromtimestamp(self.exp)

    def to_user_context(self) -> UserContext:
        """Convert token payload to UserContext.

        The application role lives in app_metadata only. The top-level role
        claim is the Postgres role and never grants application access.
        """
        return UserContext(
            user_id=self.sub,
            email=self.email,
            role=self.app_metadata.get("role"),
        )


class AuthenticatedResponse(BaseModel):
    """Response for the authenticated health check."""

    authenticated: bool = Field(description="Whether the request carried a valid token")
    user_id: str = Field(description="User id from the token")
    email: str | None = Field(default=None, description="User email if available")
    role: str | None = Field(default=None, description="Application role")
