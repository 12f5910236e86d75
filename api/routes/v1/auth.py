"""
api/routes/v1/auth.py -- Public sign-in and token endpoints.

Routes:
  POST /api/v1/register              -- create a local account; 201 + session token
  POST /api/v1/login                 -- password login; 200 + session token
  POST /api/v1/login/google          -- Google ID token login; 201 on first use, else 200
  POST /api/v1/forgot-password       -- issue a password reset token
  POST /api/v1/reset-password        -- redeem reset token + new password; session token
  POST /api/v1/verify-email/request  -- issue an email verification token
  POST /api/v1/verify-email          -- redeem verification token; session token

Every failure is a typed AuthError raised by AuthService and rendered into the
error envelope by the handler in api/main.py. Handlers here only translate
HTTP bodies to service calls and back.

Security:
  Credential endpoints (register, login, login/google, forgot-password,
  reset-password) are rate-limited per client IP at LOGIN_RATE_LIMIT.
  Responses carrying a token send Cache-Control: no-store.

Token delivery: there is no mail transport. The reset and verification tokens
are returned in the response body; a deployment that mails them should put
this router behind a gateway that strips the body and sends the message.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit
from api.models import (
    EmailRequest,
    GoogleLoginRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenResponse,
    VerifyEmailRequest,
)
from auth.service import AuthService

# Auth policy: every route in this module is public. Authenticated routes live
# in api/routes/v1/users.py.
router = APIRouter()


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _token_response(token: str, status_code: int = 200) -> JSONResponse:
    resp = JSONResponse(status_code=status_code, content=TokenResponse(token=token).model_dump())
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Sign-in
# ---------------------------------------------------------------------------


@limiter.limit(login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/register", response_model=TokenResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create a local account and return a session token.

    409 email_taken / username_taken when either is already in use by a live
    account. The email is stored lowercased.
    """
    result = _service(request).register(
        email=body.email,
        username=body.username,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
    )
    return _token_response(result.token, status_code=201)


@limiter.limit(login_rate_limit)
@router.post("/login", response_model=TokenResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    404 for an unknown email, 401 for a wrong password, 403 while the account
    is locked. The failure that reaches the lockout threshold already returns
    403.
    """
    result = _service(request).login(body.email, body.password)
    return _token_response(result.token)


@limiter.limit(login_rate_limit)
@router.post("/login/google", response_model=TokenResponse)
def login_google(request: Request, body: GoogleLoginRequest) -> JSONResponse:
    """Sign in with a Google ID token. Creates the account on first use (201)."""
    result = _service(request).oauth_login(body.google_token)
    return _token_response(result.token, status_code=201 if result.created else 200)


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


@limiter.limit(login_rate_limit)
@router.post("/forgot-password", response_model=TokenResponse)
def forgot_password(request: Request, body: EmailRequest) -> JSONResponse:
    """Issue a password reset token valid for RESET_TOKEN_TTL_SECONDS."""
    token = _service(request).forgot_password(body.email)
    return _token_response(token)


@limiter.limit(login_rate_limit)
@router.post("/reset-password", response_model=TokenResponse)
def reset_password(request: Request, body: ResetPasswordRequest) -> JSONResponse:
    """Redeem a reset token. 400 invalid_or_expired_token on mismatch or expiry."""
    result = _service(request).reset_password(body.email, body.token, body.new_password)
    return _token_response(result.token)


# ---------------------------------------------------------------------------
# Email verification
# ---------------------------------------------------------------------------


@limiter.limit(login_rate_limit)
@router.post("/verify-email/request", response_model=TokenResponse)
def request_verification(request: Request, body: EmailRequest) -> JSONResponse:
    """Issue a fresh email verification token. 409 if already verified."""
    token = _service(request).request_email_verification(body.email)
    return _token_response(token)


@limiter.limit(login_rate_limit)
@router.post("/verify-email", response_model=TokenResponse)
def verify_email(request: Request, body: VerifyEmailRequest) -> JSONResponse:
    """Redeem a verification token and return a session token."""
    result = _service(request).verify_email(body.email, body.token)
    return _token_response(result.token)
