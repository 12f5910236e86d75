"""
auth/lifecycle.py -- Time-boxed single-use tokens (email verification, password reset).

Both families share one shape: an opaque random token stored next to its
expiry on the user record. Issuing a new token replaces any previous one.

Redemption rule (identical for both families):
  succeed iff a token is stored, now < expiry, and the candidate matches.
  On success the pair is cleared in the same Transition that applies the
  effect, so a token can be used at most once. On failure
  InvalidOrExpiredToken is raised and no Transition is produced -- a failed
  attempt does NOT clear the stored token.

Token matching uses hmac.compare_digest so response time does not leak how
many leading characters of a guess were correct.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import hmac
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta

from auth.cipher import PasswordCipher
from auth.errors import InvalidOrExpiredToken
from auth.models import Transition, UserRecord

VERIFICATION_TOKEN_TTL = timedelta(hours=24)
RESET_TOKEN_TTL = timedelta(hours=1)


def _uuid_token() -> str:
    return str(uuid.uuid4())


def _matches(stored: str | None, expires: datetime | None, candidate: str, now: datetime) -> bool:
    if stored is None or expires is None:
        return False
    if not now < expires:
        return False
    return hmac.compare_digest(stored.encode("utf-8"), candidate.encode("utf-8"))


class TokenLifecycleManager:
    """Issue and redeem verification and password-reset tokens.

    token_factory defaults to uuid4 strings; tests inject a deterministic one.
    """

    def __init__(
        self,
        cipher: PasswordCipher,
        verification_ttl: timedelta = VERIFICATION_TOKEN_TTL,
        reset_ttl: timedelta = RESET_TOKEN_TTL,
        token_factory: Callable[[], str] = _uuid_token,
    ) -> None:
        self._cipher = cipher
        self.verification_ttl = verification_ttl
        self.reset_ttl = reset_ttl
        self._new_token = token_factory

    # ------------------------------------------------------------------
    # Email verification
    # ------------------------------------------------------------------

    def issue_verification_token(self, user: UserRecord, now: datetime) -> tuple[Transition, str]:
        token = self._new_token()
        transition = user.evolve(
            verification_token=token,
            verification_token_expires=now + self.verification_ttl,
        )
        return transition, token

    def redeem_verification(self, user: UserRecord, candidate: str, now: datetime) -> Transition:
        if not _matches(user.verification_token, user.verification_token_expires, candidate, now):
            raise InvalidOrExpiredToken("Invalid or expired verification token.")
        return user.evolve(
            is_verified=True,
            verification_token=None,
            verification_token_expires=None,
        )

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def issue_password_reset_token(self, user: UserRecord, now: datetime) -> tuple[Transition, str]:
        token = self._new_token()
        transition = user.evolve(
            password_reset_token=token,
            password_reset_expires=now + self.reset_ttl,
        )
        return transition, token

    def redeem_password_reset(
        self,
        user: UserRecord,
        candidate: str,
        new_password: str,
        now: datetime,
    ) -> Transition:
        if not _matches(user.password_reset_token, user.password_reset_expires, candidate, now):
            raise InvalidOrExpiredToken("Invalid or expired token.")
        return user.evolve(
            password_secret=self._cipher.update(new_password),
            password_reset_token=None,
            password_reset_expires=None,
        )
