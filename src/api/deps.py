"""FastAPI dependency injection functions."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from src.api.middleware.auth import AuthError, AuthErrorCode, decode_jwt
from src.api.middleware.error_handler import AuthorizationError, RateLimitError
from src.core.rate_limiter import get_rate_limiter
from src.schemas.auth import UserContext


async def get_current_user(
    authorization: Annotated[str, Header(description="Bearer token")] = "",
) -> UserContext:
    """Extract and validate the current user from the Authorization header.

    Args:
        authorization: The Authorization header value (Bearer token).

    Returns:
        UserContext: The authenticated user's context.

    Raises:
        HTTPException: 401 if token is missing, invalid, or expired.
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # Extract the token from "Bearer <token>" format
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format. Expected: Bearer <token>",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = decode_jwt(parts[1])
        return payload.to_user_context()

    except AuthError as e:
        if e.code == AuthErrorCode.TOKEN_EXPIRED:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token has expired",
                headers={"WWW-Authenticate": "Bearer"},
            ) from e

        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


CurrentUser = Annotated[UserContext, Depends(get_current_user)]


async def get_admin_user(user: CurrentUser) -> UserContext:
    """Require an authenticated user with the admin role.

    Raises:
        AuthorizationError: 403 if the user is not an admin.
    """
    if not user.is_admin:
        raise AuthorizationError("Admin access required")
    return user


AdminUser = Annotated[UserContext, Depends(get_admin_user)]


async def _check_rate_limit(scope: str, user: UserContext, message: str) -> None:
    limiter = get_rate_limiter()
    allowed, _, retry_after = await limiter.check_and_increment(scope, user.user_id)
    if not allowed:
        raise RateLimitError(
            message=message,
            retry_after=retry_after,
            limit=limiter.config.limit_for(scope),
        )


async def check_coupon_rate_limit(user: CurrentUser) -> None:
    """Limit coupon validation attempts per customer.

    Raises:
        RateLimitError: If the customer exceeded the window budget.
    """
    await _check_rate_limit("coupon", user, "Too many promo code attempts. Please wait and try again.")


async def check_order_rate_limit(user: CurrentUser) -> None:
    """Limit order placement per customer.

    Raises:
        RateLimitError: If the customer exceeded the window budget.
    """
    await _check_rate_limit("order", user, "Too many orders placed. Please wait and try again.")


CouponRateLimit = Annotated[None, Depends(check_coupon_rate_limit)]
OrderRateLimit = Annotated[None, Depends(check_order_rate_limit)]
