"""Unit tests for auth/lifecycle.py verification and password-reset tokens.

Covers:
- issued tokens are uuid4 strings with 24h / 1h expiry
- redemption succeeds before expiry and clears the pair (single use)
- redemption fails at or after expiry, on mismatch, and with nothing stored
- a failed redemption leaves the stored token in place
- re-issuing replaces the previous token
- password reset re-encrypts the new password
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from auth.cipher import PasswordCipher
from auth.errors import InvalidOrExpiredToken
from auth.lifecycle import TokenLifecycleManager
from auth.models import UserRecord

NOW = datetime(2026, 3, 1, 8, 30, tzinfo=timezone.utc)


@pytest.fixture(scope="module")
def cipher() -> PasswordCipher:
    return PasswordCipher("lifecycle-test-key-" + "z" * 32)


@pytest.fixture
def manager(cipher: PasswordCipher) -> TokenLifecycleManager:
    return TokenLifecycleManager(cipher)


@pytest.fixture
def user(cipher: PasswordCipher) -> UserRecord:
    return UserRecord(id="u-1", email="a@example.com", username="alice", password_secret=cipher.store("old-pass"))


class TestVerificationTokens:
    def test_issue_sets_pair_with_24h_expiry(self, manager: TokenLifecycleManager, user: UserRecord) -> None:
        transition, token = manager.issue_verification_token(user, NOW)
        assert str(uuid.UUID(token)) == token
        assert transition.user.verification_token == token
        assert transition.user.verification_token_expires == NOW + timedelta(hours=24)
        assert transition.changed == {"verification_token", "verification_token_expires"}

    def test_redeem_marks_verified_and_clears(self, manager: TokenLifecycleManager, user: UserRecord) -> None:
        issued, token = manager.issue_verification_token(user, NOW)
        redeemed = manager.redeem_verification(issued.user, token, NOW + timedelta(hours=23)).user
        assert redeemed.is_verified is True
        assert redeemed.verification_token is None
        assert redeemed.verification_token_expires is None

    def test_redeem_is_single_use(self, manager: TokenLifecycleManager, user: UserRecord) -> None:
        issued, token = manager.issue_verification_token(user, NOW)
        redeemed = manager.redeem_verification(issued.user, token, NOW).user
        with pytest.raises(InvalidOrExpiredToken):
            manager.redeem_verification(redeemed, token, NOW)

    def test_expiry_boundary_is_exclusive(self, manager: TokenLifecycleManager, user: UserRecord) -> None:
        issued, token = manager.issue_verification_token(user, NOW)
        with pytest.raises(InvalidOrExpiredToken):
            manager.redeem_verification(issued.user, token, NOW + timedelta(hours=24))

    def test_nothing_stored(self, manager: TokenLifecycleManager, user: UserRecord) -> None:
        with pytest.raises(InvalidOrExpiredToken):
            manager.redeem_verification(user, "anything", NOW)

    def test_reissue_replaces_previous(self, manager: TokenLifecycleManager, user: UserRecord) -> None:
        first, old_token = manager.issue_verification_token(user, NOW)
        second, new_token = manager.issue_verification_token(first.user, NOW + timedelta(minutes=5))
        assert old_token != new_token
        with pytest.raises(InvalidOrExpiredToken):
            manager.redeem_verification(second.user, old_token, NOW + timedelta(minutes=6))
        assert manager.redeem_verification(second.user, new_token, NOW + timedelta(minutes=6)).user.is_verified


class TestPasswordResetTokens:
    def test_issue_sets_one_hour_expiry(self, manager: TokenLifecycleManager, user: UserRecord) -> None:
        transition, token = manager.issue_password_reset_token(user, NOW)
        assert transition.user.password_reset_token == token
        assert transition.user.password_reset_expires == NOW + timedelta(hours=1)

    def test_redeem_replaces_password(
        self, manager: TokenLifecycleManager, cipher: PasswordCipher, user: UserRecord
    ) -> None:
        issued, token = manager.issue_password_reset_token(user, NOW)
        transition = manager.redeem_password_reset(issued.user, token, "new-pass", NOW + timedelta(minutes=59))
        assert cipher.verify(transition.user.password_secret, "new-pass")
        assert not cipher.verify(transition.user.password_secret, "old-pass")
        assert transition.user.password_reset_token is None
        assert transition.user.password_reset_expires is None
        assert transition.changed == {"password_secret", "password_reset_token", "password_reset_expires"}

    def test_expired_token_rejected(self, manager: TokenLifecycleManager, user: UserRecord) -> None:
        issued, token = manager.issue_password_reset_token(user, NOW)
        with pytest.raises(InvalidOrExpiredToken):
            manager.redeem_password_reset(issued.user, token, "new-pass", NOW + timedelta(hours=1, seconds=1))

    def test_mismatch_keeps_stored_token(self, manager: TokenLifecycleManager, user: UserRecord) -> None:
        issued, token = manager.issue_password_reset_token(user, NOW)
        with pytest.raises(InvalidOrExpiredToken):
            manager.redeem_password_reset(issued.user, "wrong-token", "new-pass", NOW)
        # the failed attempt produced no transition, so the real token still works
        assert manager.redeem_password_reset(issued.user, token, "new-pass", NOW).user.password_reset_token is None

    def test_injected_token_factory(self, cipher: PasswordCipher, user: UserRecord) -> None:
        manager = TokenLifecycleManager(cipher, reset_ttl=timedelta(minutes=5), token_factory=lambda: "fixed")
        transition, token = manager.issue_password_reset_token(user, NOW)
        assert token == "fixed"
        assert transition.user.password_reset_expires == NOW + timedelta(minutes=5)
