"""
auth/dependencies.py -- Request-boundary authentication gate and FastAPI Depends() helpers.

AuthenticationGate is the framework-free part: given the inbound headers it
extracts `Authorization: Bearer <token>`, validates the token with the
SessionTokenIssuer and returns the Credentials. It does no I/O beyond header
inspection and signature verification.

get_current_credentials() wires the gate into FastAPI. It raises the typed
AuthError (MissingToken / InvalidToken) which the app-level handler turns
into a 401 before the route body runs, and leaves the Credentials on
request.state.credentials for anything downstream.

require_admin() additionally loads the live record and demands role "admin".

Layer rule: may import fastapi (Request) because this module is part of the
dependency injection system. No imports from api/.
"""

from __future__ import annotations

from collections.abc import Mapping

from fastapi import Request

from auth.errors import Forbidden, MissingToken, NotFound
from auth.models import ROLE_ADMIN, Credentials, UserRecord
from auth.tokens import SessionTokenIssuer


def extract_bearer_token(headers: Mapping[str, str]) -> str:
    """Return the token from an `Authorization: Bearer <token>` header.

    The scheme is matched case-insensitively. Raises MissingToken when the
    header is absent, uses another scheme, or carries no token.
    """
    auth_header = headers.get("Authorization") or headers.get("authorization") or ""
    scheme, _, token = auth_header.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token or " " in token:
        raise MissingToken()
    return token


class AuthenticationGate:
    def __init__(self, issuer: SessionTokenIssuer) -> None:
        self._issuer = issuer

    def authenticate(self, headers: Mapping[str, str]) -> Credentials:
        """Return the Credentials proven by the request's bearer token."""
        return self._issuer.validate(extract_bearer_token(headers))


def get_current_credentials(request: Request) -> Credentials:
    """Require a valid bearer token. Raises MissingToken / InvalidToken (401).

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(credentials: Credentials = Depends(get_current_credentials)): ...
    """
    gate: AuthenticationGate = request.app.state.gate
    credentials = gate.authenticate(request.headers)
    request.state.credentials = credentials
    return credentials


def require_admin(request: Request) -> UserRecord:
    """Require an authenticated admin. 401 if unauthenticated, 403 if not admin.

    The role is not part of the token, so the live record is loaded -- a
    demotion takes effect on the next request, not at token expiry.
    """
    credentials = get_current_credentials(request)
    user = request.app.state.user_store.get_by_id(credentials.id)
    if user is None:
        raise NotFound()
    if user.role != ROLE_ADMIN:
        raise Forbidden()
    return user
