"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Protected routes take an access token in the Authorization: Bearer header.
The token is checked statelessly (signature, issuer, audience, expiry, type);
get_current_user() additionally loads the user and rejects deactivated
accounts, so a revoked account stops working as soon as it is disabled even
though its access token has not expired yet.

Failures raise AuthError; the app's exception handler turns it into 401.

Layer rule: auth/dependencies.py may import from fastapi (for Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.errors import AuthError, AuthErrorCode
from auth.models import User
from auth.service import AuthService


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def bearer_token(request: Request) -> str:
    """Extract the raw token from Authorization: Bearer <token>."""
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError(AuthErrorCode.INVALID_ACCESS_TOKEN, "Access token is required.")
    return token.strip()


def get_token_claims(request: Request) -> dict:
    """Verify the Bearer access token and return its claims."""
    return get_auth_service(request).verify_access_token(bearer_token(request))


def get_current_user(request: Request) -> User:
    """Require a valid access token belonging to an active user.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    claims = get_token_claims(request)
    user = get_auth_service(request).find_user_by_id(claims["user_id"])
    if user is None:
        raise AuthError(AuthErrorCode.USER_ACCOUNT_INACTIVE)
    return user
