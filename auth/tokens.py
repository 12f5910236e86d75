"""
auth/tokens.py -- Session (bearer) token issuance and validation.

Security design decisions:
  JWT: python-jose with HS256, signed with SECRET_KEY. The identity is carried
       as explicit claims -- sub (user id), email, username -- rather than a
       single delimiter-joined string, so no field value can ever break the
       parse. exp is unix seconds, issue time + session lifetime (7 days by
       default). jti is random, so two tokens minted in the same second differ.

  Validation raises InvalidToken on any failure: bad signature, expired exp,
       wrong algorithm, or missing/empty identity claims. The gate turns that
       into a 401.

  Secret: passed in by the caller (the API lifespan reads it from
       core.config.get_settings() once). This module never reads configuration.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from auth.errors import InternalFailure, InvalidToken
from auth.models import Credentials

logger = logging.getLogger("accountguard.auth.tokens")

_ALGORITHM = "HS256"
DEFAULT_SESSION_LIFETIME = timedelta(days=7)
_IDENTITY_CLAIMS = ("sub", "email", "username")


class SessionTokenIssuer:
    """Mint and verify signed, expiring session tokens for a Credentials triple.

    Usage:
        issuer = SessionTokenIssuer(settings.secret_key)
        token = issuer.issue(Credentials(id="...", email="a@x.com", username="alice"))
        issuer.validate(token)  # -> Credentials(...)
    """

    def __init__(self, secret: str, lifetime: timedelta = DEFAULT_SESSION_LIFETIME) -> None:
        if not secret:
            raise ValueError("SessionTokenIssuer requires a non-empty secret")
        self._secret = secret
        self.lifetime = lifetime

    def issue(self, credentials: Credentials, now: datetime | None = None) -> str:
        """Encode *credentials* into a signed token expiring lifetime after *now*."""
        issued_at = now or datetime.now(timezone.utc)
        payload = {
            "sub": credentials.id,
            "email": credentials.email,
            "username": credentials.username,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + self.lifetime).timestamp()),
            "jti": uuid.uuid4().hex,
        }
        try:
            return jwt.encode(payload, self._secret, algorithm=_ALGORITHM)
        except JWTError as exc:
            logger.error("issue: failed to sign session token for user_id=%s", credentials.id)
            raise InternalFailure("Failed to create session token.") from exc

    def validate(self, token: str) -> Credentials:
        """Verify signature and expiry and rebuild the Credentials triple."""
        try:
            claims = jwt.decode(token, self._secret, algorithms=[_ALGORITHM])
        except JWTError as exc:
            raise InvalidToken() from exc
        values = [claims.get(name) for name in _IDENTITY_CLAIMS]
        if not all(isinstance(v, str) and v for v in values):
            raise InvalidToken("Session token is missing identity claims.")
        user_id, email, username = values
        return Credentials(id=user_id, email=email, username=username)
