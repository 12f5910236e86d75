"""
auth/cipher.py -- Reversible password storage.

Passwords are encrypted, not one-way hashed: the stored secret is a Fernet
token (AES-128-CBC + HMAC-SHA256) and verification decrypts it and compares
the plaintext. This matches the storage contract of existing account data;
switching to a one-way KDF changes that contract and needs a migration of
every stored secret, so it is deliberately not done here (see DESIGN.md).

Key handling:
  ENCRYPTION_KEY is an arbitrary string from configuration. PBKDF2-HMAC-SHA256
  stretches it into the 32-byte urlsafe key Fernet expects. Derivation runs
  once per PasswordCipher instance, which the API creates once at startup.

Failure modes:
  verify() returns False for a wrong password. A secret that cannot be
  decrypted raises PasswordCipherError -- that means a corrupted row or a
  rotated/mismatched key, and must never be reported as "wrong password".

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import base64
import hmac

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from auth.errors import PasswordCipherError

_KDF_SALT = b"accountguard.password-cipher.v1"
_KDF_ITERATIONS = 100_000


class PasswordCipher:
    """Encrypt passwords for storage and verify candidates against them.

    Usage:
        cipher = PasswordCipher(settings.encryption_key)
        secret = cipher.store("hunter22")
        cipher.verify(secret, "hunter22")  # True
    """

    def __init__(self, key: str) -> None:
        if not key:
            raise ValueError("PasswordCipher requires a non-empty key")
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=_KDF_SALT,
            iterations=_KDF_ITERATIONS,
        )
        self._fernet = Fernet(base64.urlsafe_b64encode(kdf.derive(key.encode("utf-8"))))

    def store(self, plaintext: str) -> str:
        """Return the storable secret for *plaintext*."""
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def update(self, plaintext: str) -> str:
        """Return a fresh secret for a changed password. Same transform as store()."""
        return self.store(plaintext)

    def reveal(self, secret: str) -> str:
        """Decrypt *secret* back to the plaintext password.

        Raises PasswordCipherError if the secret is not a valid token for
        this key.
        """
        try:
            return self._fernet.decrypt(secret.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeError, ValueError) as exc:
            raise PasswordCipherError("Stored password secret could not be decrypted.") from exc

    def verify(self, secret: str, candidate: str) -> bool:
        """Return True if *candidate* equals the password stored in *secret*.

        The comparison is byte-for-byte and constant time.
        """
        stored = self.reveal(secret).encode("utf-8")
        return hmac.compare_digest(stored, candidate.encode("utf-8"))
