"""
auth/service.py -- Authentication use cases.

AuthService orchestrates the pure components (PasswordCipher,
AccountSecurityPolicy, TokenLifecycleManager, SessionTokenIssuer) against the
UserStore. Every use case follows the same shape:

  1. fetch a fresh UserRecord for this request (no cross-request cache),
  2. apply guards (not found, locked, already verified) -> typed AuthError,
  3. compute a Transition with the pure components,
  4. persist exactly the changed fields,
  5. mint a session token where the operation signs the user in.

Durability: a use case is only as durable as its final persistence call. If
the request is abandoned before that, the computed Transition is simply
dropped. There is no retry anywhere -- at most once per request.

Domain failures are logged at WARNING with the operation name and re-raised;
persistence failures are logged with a traceback and surfaced as
InternalFailure.

Layer rule: no imports from api/. core/ only for the Settings type.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.cipher import PasswordCipher
from auth.errors import (
    AccountLocked,
    AlreadyVerified,
    EmailTaken,
    ExternalTokenRejected,
    InternalFailure,
    InvalidCredentials,
    InvalidOrExpiredToken,
    NotFound,
    PasswordCipherError,
    UsernameTaken,
)
from auth.lifecycle import TokenLifecycleManager
from auth.models import ROLE_ADMIN, ROLE_USER, AuthResult, Credentials, Transition, UserRecord
from auth.oauth import GoogleTokenVerifier
from auth.policy import AccountSecurityPolicy
from auth.store import UserStore
from auth.tokens import SessionTokenIssuer

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("accountguard.auth.service")

_NAME_MAX = 50


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthService:
    def __init__(
        self,
        store: UserStore,
        cipher: PasswordCipher,
        policy: AccountSecurityPolicy,
        lifecycle: TokenLifecycleManager,
        issuer: SessionTokenIssuer,
        verifier: GoogleTokenVerifier,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._cipher = cipher
        self._policy = policy
        self._lifecycle = lifecycle
        self.issuer = issuer
        self._verifier = verifier
        self._clock = clock

    # ------------------------------------------------------------------
    # Sign-in flows
    # ------------------------------------------------------------------

    def register(
        self,
        email: str,
        username: str,
        password: str,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> AuthResult:
        """Create a local account and sign it in. Raises EmailTaken / UsernameTaken."""
        email = normalize_email(email)
        if self._find("register", email) is not None:
            logger.warning("register: email already registered")
            raise EmailTaken()
        if self._guard_io("register", self._store.get_by_username, username) is not None:
            logger.warning("register: username already taken")
            raise UsernameTaken()

        now = self._clock()
        user = self._new_user(email, username, self._cipher.store(password), first_name, last_name, now)
        signed_in = self._policy.record_successful_login(user, now).user
        token = self._mint(signed_in, now)
        self._insert("register", signed_in)
        logger.info("register: created user_id=%s", signed_in.id)
        return AuthResult(token=token, created=True)

    def login(self, email: str, password: str) -> AuthResult:
        """Password login with lockout bookkeeping.

        A wrong password is recorded and persisted before the error is raised.
        If that failure is the one that arms the lockout, AccountLocked is
        raised instead of InvalidCredentials.
        """
        user = self._require("login", email)
        now = self._clock()
        self._ensure_unlocked("login", user, now)

        if not self._password_matches("login", user, password):
            failed = self._policy.record_failed_login(user, now)
            self._persist("login", failed)
            if self._policy.is_account_locked(failed.user, now):
                logger.warning(
                    "login: user_id=%s locked after %d failed attempts",
                    user.id,
                    failed.user.failed_login_attempts,
                )
                raise AccountLocked()
            logger.warning("login: invalid password for user_id=%s", user.id)
            raise InvalidCredentials()

        transition = self._policy.record_successful_login(user, now)
        token = self._mint(transition.user, now)
        self._persist("login", transition)
        return AuthResult(token=token)

    def oauth_login(self, external_token: str) -> AuthResult:
        """Sign in with a Google ID token, creating the account on first use.

        Authenticity comes from the provider, so there is no password check;
        the lockout still applies to existing accounts.
        """
        try:
            identity = self._verifier.verify(external_token)
        except ExternalTokenRejected as exc:
            logger.warning("oauth_login: external token rejected: %s", exc.message)
            raise

        email = normalize_email(identity.email)
        user = self._find("oauth_login", email)
        now = self._clock()

        if user is None:
            # No local password: store an unguessable placeholder so the
            # account cannot be entered through POST /login until a reset.
            placeholder = self._cipher.store(secrets.token_urlsafe(32))
            user = self._new_user(
                email,
                self._oauth_username(identity.name),
                placeholder,
                identity.given_name,
                identity.family_name,
                now,
            )
            signed_in = self._policy.record_successful_login(user, now).user
            token = self._mint(signed_in, now)
            self._insert("oauth_login", signed_in)
            logger.info("oauth_login: created user_id=%s", signed_in.id)
            return AuthResult(token=token, created=True)

        self._ensure_unlocked("oauth_login", user, now)
        transition = self._policy.record_successful_login(user, now)
        token = self._mint(transition.user, now)
        self._persist("oauth_login", transition)
        return AuthResult(token=token)

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def forgot_password(self, email: str) -> str:
        """Issue a password reset token (valid 1h) and return it.

        Delivering the token to the user is the caller's concern.
        """
        user = self._require("forgot_password", email)
        now = self._clock()
        self._ensure_unlocked("forgot_password", user, now)
        transition, token = self._lifecycle.issue_password_reset_token(user, now)
        self._persist("forgot_password", transition)
        return token

    def reset_password(self, email: str, token: str, new_password: str) -> AuthResult:
        """Redeem a reset token, store the new password and sign the user in."""
        user = self._require("reset_password", email)
        now = self._clock()
        self._ensure_unlocked("reset_password", user, now)
        try:
            transition = self._lifecycle.redeem_password_reset(user, token, new_password, now)
        except InvalidOrExpiredToken:
            logger.warning("reset_password: invalid or expired token for user_id=%s", user.id)
            raise
        session = self._mint(transition.user, now)
        self._persist("reset_password", transition)
        return AuthResult(token=session)

    # ------------------------------------------------------------------
    # Email verification
    # ------------------------------------------------------------------

    def request_email_verification(self, email: str) -> str:
        """Issue an email verification token (valid 24h) and return it."""
        user = self._require("request_email_verification", email)
        if user.is_verified:
            logger.warning("request_email_verification: user_id=%s already verified", user.id)
            raise AlreadyVerified()
        transition, token = self._lifecycle.issue_verification_token(user, self._clock())
        self._persist("request_email_verification", transition)
        return token

    def verify_email(self, email: str, token: str) -> AuthResult:
        """Redeem a verification token and sign the user in."""
        user = self._require("verify_email", email)
        if user.is_verified:
            logger.warning("verify_email: user_id=%s already verified", user.id)
            raise AlreadyVerified()
        now = self._clock()
        try:
            transition = self._lifecycle.redeem_verification(user, token, now)
        except InvalidOrExpiredToken:
            logger.warning("verify_email: invalid or expired token for user_id=%s", user.id)
            raise
        session = self._mint(transition.user, now)
        self._persist("verify_email", transition)
        return AuthResult(token=session)

    # ------------------------------------------------------------------
    # Account management
    # ------------------------------------------------------------------

    def get_profile(self, credentials: Credentials) -> UserRecord:
        user = self._guard_io("get_profile", self._store.get_by_id, credentials.id)
        if user is None:
            raise NotFound()
        return user

    def deactivate(self, credentials: Credentials) -> UserRecord:
        """Soft-delete the caller's own account."""
        user = self.get_profile(credentials)
        transition = self._policy.soft_delete(user, self._clock())
        self._persist("deactivate", transition)
        logger.info("deactivate: user_id=%s soft-deleted", user.id)
        return transition.user

    def set_role(self, user_id: str, role: str) -> UserRecord:
        """Promote to admin or demote to user. Authorization is the caller's job."""
        user = self._guard_io("set_role", self._store.get_by_id, user_id)
        if user is None:
            raise NotFound()
        if role == ROLE_ADMIN:
            transition = self._policy.promote(user)
        elif role == ROLE_USER:
            transition = self._policy.demote(user)
        else:
            raise ValueError(f"Unknown role: {role!r}")
        self._persist("set_role", transition)
        logger.info("set_role: user_id=%s role=%s", user_id, role)
        return transition.user

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _new_user(
        self,
        email: str,
        username: str,
        password_secret: str,
        first_name: str | None,
        last_name: str | None,
        now: datetime,
    ) -> UserRecord:
        return UserRecord(
            id=str(uuid.uuid4()),
            email=email,
            username=username,
            password_secret=password_secret,
            first_name=first_name[:_NAME_MAX] if first_name else None,
            last_name=last_name[:_NAME_MAX] if last_name else None,
            created_at=now,
            updated_at=now,
        )

    def _oauth_username(self, name: str | None) -> str:
        candidate = (name or "").strip()
        if 3 <= len(candidate) <= 30 and self._guard_io("oauth_login", self._store.get_by_username, candidate) is None:
            return candidate
        return f"user-{uuid.uuid4().hex[:12]}"

    def _mint(self, user: UserRecord, now: datetime) -> str:
        return self.issuer.issue(user.credentials, now)

    def _password_matches(self, operation: str, user: UserRecord, password: str) -> bool:
        try:
            return self._cipher.verify(user.password_secret, password)
        except PasswordCipherError:
            logger.error("%s: stored secret for user_id=%s could not be decrypted", operation, user.id)
            raise

    def _ensure_unlocked(self, operation: str, user: UserRecord, now: datetime) -> None:
        if self._policy.is_account_locked(user, now):
            logger.warning("%s: account locked for user_id=%s", operation, user.id)
            raise AccountLocked()

    def _find(self, operation: str, email: str) -> UserRecord | None:
        return self._guard_io(operation, self._store.get_by_email, normalize_email(email))

    def _require(self, operation: str, email: str) -> UserRecord:
        user = self._find(operation, email)
        if user is None:
            logger.warning("%s: user not found", operation)
            raise NotFound()
        return user

    def _persist(self, operation: str, transition: Transition) -> None:
        self._guard_io(operation, self._store.update, transition.user.id, **transition.changes())

    def _insert(self, operation: str, user: UserRecord) -> None:
        try:
            self._store.insert(user)
        except IntegrityError as exc:
            # A concurrent request created the same email or username between
            # our pre-check and the insert.
            logger.warning("%s: uniqueness conflict on insert", operation)
            if self._find(operation, user.email) is not None:
                raise EmailTaken() from exc
            raise UsernameTaken() from exc
        except SQLAlchemyError as exc:
            logger.exception("%s: failed to save user", operation)
            raise InternalFailure() from exc

    @staticmethod
    def _guard_io(operation: str, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except SQLAlchemyError as exc:
            logger.exception("%s: persistence failure", operation)
            raise InternalFailure() from exc


def build_auth_service(
    settings: Settings,
    store: UserStore,
    verifier: GoogleTokenVerifier | None = None,
    clock: Callable[[], datetime] = _utcnow,
) -> AuthService:
    """Wire every component from one Settings instance. Called once at startup."""
    cipher = PasswordCipher(settings.encryption_key)
    return AuthService(
        store=store,
        cipher=cipher,
        policy=AccountSecurityPolicy(
            lockout_threshold=settings.lockout_threshold,
            lockout_duration=timedelta(minutes=settings.lockout_minutes),
        ),
        lifecycle=TokenLifecycleManager(
            cipher,
            verification_ttl=timedelta(seconds=settings.verification_token_ttl_seconds),
            reset_ttl=timedelta(seconds=settings.reset_token_ttl_seconds),
        ),
        issuer=SessionTokenIssuer(
            settings.secret_key,
            lifetime=timedelta(seconds=settings.session_token_expire_seconds),
        ),
        verifier=verifier
        or GoogleTokenVerifier(
            client_id=settings.google_client_id,
            tokeninfo_url=settings.google_tokeninfo_url,
        ),
        clock=clock,
    )
