"""
auth/errors.py -- Error taxonomy for authentication and token lifecycle.

AuthError is the base for every failure the use cases raise. Each subclass
carries the HTTP status and a machine-readable code; api/main.py converts
them to the standard error envelope in a single exception handler, so route
functions never build error responses by hand.

Expected failures (wrong password, expired token, locked account) are plain
AuthError subclasses. InternalFailure marks conditions that are not the
caller's fault: an undecryptable password secret, a signing failure, or a
persistence error. Those are logged with a traceback and surfaced with a
generic message.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all typed authentication errors."""

    status_code: int = 400
    code: str = "auth_error"
    message: str = "Authentication error."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class EmailTaken(AuthError):
    status_code = 409
    code = "email_taken"
    message = "Email already registered."


class UsernameTaken(AuthError):
    status_code = 409
    code = "username_taken"
    message = "Username already taken."


class NotFound(AuthError):
    status_code = 404
    code = "not_found"
    message = "User not found."


class InvalidCredentials(AuthError):
    status_code = 401
    code = "invalid_credentials"
    message = "Invalid email or password."


class AccountLocked(AuthError):
    status_code = 403
    code = "account_locked"
    message = "Account is locked due to too many failed login attempts."


class InvalidOrExpiredToken(AuthError):
    status_code = 400
    code = "invalid_or_expired_token"
    message = "Invalid or expired token."


class AlreadyVerified(AuthError):
    status_code = 409
    code = "already_verified"
    message = "Email already verified."


class MissingToken(AuthError):
    status_code = 401
    code = "missing_token"
    message = "Missing or malformed Authorization header."


class InvalidToken(AuthError):
    status_code = 401
    code = "invalid_token"
    message = "Invalid or expired session token."


class ExternalTokenRejected(AuthError):
    status_code = 401
    code = "invalid_external_token"
    message = "External identity token could not be verified."


class Forbidden(AuthError):
    status_code = 403
    code = "forbidden"
    message = "Admin access required."


class InternalFailure(AuthError):
    status_code = 500
    code = "internal_error"
    message = "An unexpected error occurred."


class PasswordCipherError(InternalFailure):
    """Stored secret could not be decrypted: corruption or key mismatch, not a wrong password."""
