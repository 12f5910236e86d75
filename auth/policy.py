"""
auth/policy.py -- Account security policy: lockout bookkeeping and account state.

Every operation takes a UserRecord snapshot and the current time and returns
a Transition. Nothing here touches the database; the caller persists the
changed fields. Passing `now` explicitly keeps the lockout window testable
without patching the clock.

Lockout rule:
  Each failed login increments failed_login_attempts. When the count reaches
  lockout_threshold the account is locked until now + lockout_duration. The
  counter is not capped -- failures after the lock keep counting, and each one
  re-arms the window. A successful login resets everything.

  is_account_locked() looks only at lockout_until. An elapsed lockout is not
  a lock even if is_locked was never cleared.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from auth.models import ROLE_ADMIN, ROLE_USER, Transition, UserRecord

DEFAULT_LOCKOUT_THRESHOLD = 5
DEFAULT_LOCKOUT_DURATION = timedelta(minutes=30)


class AccountSecurityPolicy:
    def __init__(
        self,
        lockout_threshold: int = DEFAULT_LOCKOUT_THRESHOLD,
        lockout_duration: timedelta = DEFAULT_LOCKOUT_DURATION,
    ) -> None:
        self.lockout_threshold = lockout_threshold
        self.lockout_duration = lockout_duration

    # ------------------------------------------------------------------
    # Login bookkeeping
    # ------------------------------------------------------------------

    def record_successful_login(self, user: UserRecord, now: datetime) -> Transition:
        return user.evolve(
            last_login=now,
            failed_login_attempts=0,
            is_locked=False,
            lockout_until=None,
        )

    def record_failed_login(self, user: UserRecord, now: datetime) -> Transition:
        attempts = user.failed_login_attempts + 1
        if attempts >= self.lockout_threshold:
            return user.evolve(
                failed_login_attempts=attempts,
                is_locked=True,
                lockout_until=now + self.lockout_duration,
            )
        return user.evolve(failed_login_attempts=attempts)

    @staticmethod
    def is_account_locked(user: UserRecord, now: datetime) -> bool:
        return user.lockout_until is not None and now < user.lockout_until

    # ------------------------------------------------------------------
    # Account state
    # ------------------------------------------------------------------

    @staticmethod
    def soft_delete(user: UserRecord, now: datetime) -> Transition:
        return user.evolve(deleted_at=now, is_active=False)

    @staticmethod
    def restore(user: UserRecord) -> Transition:
        return user.evolve(deleted_at=None, is_active=True)

    @staticmethod
    def promote(user: UserRecord) -> Transition:
        return user.evolve(role=ROLE_ADMIN)

    @staticmethod
    def demote(user: UserRecord) -> Transition:
        return user.evolve(role=ROLE_USER)
