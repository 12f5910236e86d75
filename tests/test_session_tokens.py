"""Unit tests for auth/tokens.py session token issuance and validation.

Covers:
- issue/validate returns the same Credentials triple
- exp is iat + 7 days by default
- tokens minted in the same second differ (jti)
- wrong secret, tampering, expiry, garbage and missing claims -> InvalidToken
"""

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from auth.errors import InvalidToken
from auth.models import Credentials
from auth.tokens import SessionTokenIssuer

SECRET = "session-test-secret-" + "q" * 32
CREDS = Credentials(id="3f1c0f1e-0000-4000-8000-000000000001", email="alice@example.com", username="alice")


@pytest.fixture
def issuer() -> SessionTokenIssuer:
    return SessionTokenIssuer(SECRET)


class TestIssue:
    def test_round_trip(self, issuer: SessionTokenIssuer) -> None:
        assert issuer.validate(issuer.issue(CREDS)) == CREDS

    def test_claims_layout(self, issuer: SessionTokenIssuer) -> None:
        now = datetime.now(timezone.utc).replace(microsecond=0)
        claims = jwt.get_unverified_claims(issuer.issue(CREDS, now))
        assert claims["sub"] == CREDS.id
        assert claims["email"] == CREDS.email
        assert claims["username"] == CREDS.username
        assert claims["exp"] - claims["iat"] == 7 * 24 * 3600
        assert claims["jti"]

    def test_tokens_differ_within_one_second(self, issuer: SessionTokenIssuer) -> None:
        now = datetime.now(timezone.utc)
        assert issuer.issue(CREDS, now) != issuer.issue(CREDS, now)

    def test_delimiter_characters_survive(self, issuer: SessionTokenIssuer) -> None:
        odd = Credentials(id="id::::1", email="a::::b@example.com", username="x::::y")
        assert issuer.validate(issuer.issue(odd)) == odd

    def test_empty_secret_rejected(self) -> None:
        with pytest.raises(ValueError):
            SessionTokenIssuer("")


class TestValidate:
    def test_wrong_secret(self, issuer: SessionTokenIssuer) -> None:
        other = SessionTokenIssuer("another-secret-entirely-" + "w" * 32)
        with pytest.raises(InvalidToken):
            other.validate(issuer.issue(CREDS))

    def test_tampered_payload(self, issuer: SessionTokenIssuer) -> None:
        header, payload, signature = issuer.issue(CREDS).split(".")
        forged = jwt.encode({"sub": "admin", "email": "x@example.com", "username": "x"}, "guess", algorithm="HS256")
        with pytest.raises(InvalidToken):
            issuer.validate(".".join([header, forged.split(".")[1], signature]))

    def test_expired(self) -> None:
        short = SessionTokenIssuer(SECRET, lifetime=timedelta(seconds=1))
        token = short.issue(CREDS, datetime.now(timezone.utc) - timedelta(minutes=5))
        with pytest.raises(InvalidToken):
            short.validate(token)

    def test_garbage(self, issuer: SessionTokenIssuer) -> None:
        for token in ("", "not-a-jwt", "a.b.c"):
            with pytest.raises(InvalidToken):
                issuer.validate(token)

    def test_missing_identity_claim(self, issuer: SessionTokenIssuer) -> None:
        exp = int((datetime.now(timezone.utc) + timedelta(hours=1)).timestamp())
        token = jwt.encode({"sub": CREDS.id, "email": "", "username": "alice", "exp": exp}, SECRET, algorithm="HS256")
        with pytest.raises(InvalidToken):
            issuer.validate(token)
