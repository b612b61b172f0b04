"""
api/routes/v1/auth.py -- Registration, login, token refresh and logout endpoints.

Routes:
  POST /api/v1/auth/register     -- create account; returns user + token pair (201)
  POST /api/v1/auth/login        -- email/phone + password; returns user + token pair
  POST /api/v1/auth/refresh      -- rotate a refresh token; returns user + new pair
  POST /api/v1/auth/logout       -- invalidate one refresh token (requires auth)
  POST /api/v1/auth/logout-all   -- invalidate every refresh token of the caller (requires auth)
  GET  /api/v1/auth/me           -- current user profile (requires auth)

Security:
  [H2] Rate limits per IP: register 20/min, login 10/min, refresh 50/min.
  [C1] verify_credentials() provides timing equalization -- use it, never inline.
  [M5] Cache-Control: no-store on every response that carries tokens.
  Login failures all answer INVALID_CREDENTIALS, whatever the cause.

All handlers are plain def: Argon2 and SQLite calls block, so FastAPI runs
them in its threadpool instead of on the event loop.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    AuthResponse,
    ErrorDetail,
    ErrorResponse,
    LoginRequest,
    LogoutResponse,
    RefreshRequest,
    RegisterRequest,
    TokenPairResponse,
    UserResponse,
)
from auth.dependencies import get_auth_service, get_current_user
from auth.models import TokenPair, User
from auth.service import AuthService

# Auth policy:
# - POST /api/v1/auth/register:    public
# - POST /api/v1/auth/login:       public
# - POST /api/v1/auth/refresh:     public -- the refresh token is the credential
# - POST /api/v1/auth/logout:      requires access token (get_current_user)
# - POST /api/v1/auth/logout-all:  requires access token (get_current_user)
# - GET  /api/v1/auth/me:          requires access token (get_current_user)
router = APIRouter()


def _auth_response(user: User, pair: TokenPair, status_code: int = 200) -> JSONResponse:
    resp = JSONResponse(
        status_code=status_code,
        content=AuthResponse(
            user=UserResponse.from_user(user),
            tokens=TokenPairResponse.from_pair(pair),
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=AuthResponse, status_code=201)
@limiter.limit("20/minute")  # [H2] must be BELOW @router so FastAPI registers the limited wrapper
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create an account and log it in immediately.

    409 EMAIL_ALREADY_EXISTS / PHONE_ALREADY_EXISTS on duplicates,
    422 VALIDATION_ERROR when the password policy or identifier format fails.
    """
    service: AuthService = get_auth_service(request)
    user = service.create_user(
        password=body.password,
        name=body.name,
        email=body.email,
        phone=body.phone,
        auth_method=body.auth_method,
    )
    pair = service.issue_token_pair(user)
    return _auth_response(user, pair, status_code=201)


@router.post("/auth/login", response_model=AuthResponse)
@limiter.limit("10/minute")  # [H2] brute-force mitigation
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email or phone plus password; return a token pair.

    Returns the same generic error for unknown identifier, wrong password and
    inactive account so the response does not reveal which one it was.
    """
    service: AuthService = get_auth_service(request)
    user = service.verify_credentials(body.identifier, body.password)
    if user is None:
        resp = JSONResponse(
            status_code=401,
            content=ErrorResponse(
                error=ErrorDetail(code="INVALID_CREDENTIALS", message="Invalid email/phone or password.")
            ).model_dump(),
        )
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp

    pair = service.issue_token_pair(user)
    return _auth_response(user, pair)


@router.post("/auth/refresh", response_model=AuthResponse)
@limiter.limit("50/minute")  # [H2]
def refresh(request: Request, body: RefreshRequest) -> JSONResponse:
    """Exchange a refresh token for a new pair. The presented token is consumed.

    Presenting an already used token revokes every session of its owner and
    answers 403 REFRESH_TOKEN_REUSE_DETECTED.
    """
    service: AuthService = get_auth_service(request)
    result = service.refresh(body.refresh_token)
    return _auth_response(result.user, result.tokens)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=LogoutResponse)
def logout(
    request: Request,
    body: RefreshRequest,
    current_user: User = Depends(get_current_user),
) -> LogoutResponse:
    """Invalidate the given refresh token. Idempotent: a second call reports revoked=0."""
    revoked = get_auth_service(request).invalidate_one(body.refresh_token)
    return LogoutResponse(message="Logged out.", revoked=1 if revoked else 0)


@router.post("/auth/logout-all", response_model=LogoutResponse)
def logout_all(request: Request, current_user: User = Depends(get_current_user)) -> LogoutResponse:
    """Invalidate every refresh token of the authenticated user."""
    revoked = get_auth_service(request).invalidate_all(current_user.id)
    return LogoutResponse(message="Logged out from all sessions.", revoked=revoked)


@router.get("/auth/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)) -> UserResponse:
    """Return the profile of the currently authenticated user."""
    return UserResponse.from_user(current_user)
