"""Unit tests for auth/dependencies.py bearer extraction and AuthenticationGate.

Covers:
- "Bearer <token>" with any scheme casing is accepted
- missing header, other schemes and empty tokens -> MissingToken
- a token the issuer rejects -> InvalidToken
"""

import pytest

from auth.dependencies import AuthenticationGate, extract_bearer_token
from auth.errors import InvalidToken, MissingToken
from auth.models import Credentials
from auth.tokens import SessionTokenIssuer

ISSUER = SessionTokenIssuer("gate-test-secret-" + "g" * 32)
CREDS = Credentials(id="u-42", email="gate@example.com", username="gatekeeper")


class TestExtractBearerToken:
    @pytest.mark.parametrize("scheme", ["Bearer", "bearer", "BEARER"])
    def test_scheme_case_insensitive(self, scheme: str) -> None:
        assert extract_bearer_token({"Authorization": f"{scheme} abc.def.ghi"}) == "abc.def.ghi"

    @pytest.mark.parametrize(
        "headers",
        [
            {},
            {"Authorization": ""},
            {"Authorization": "Bearer"},
            {"Authorization": "Bearer   "},
            {"Authorization": "Basic dXNlcjpwYXNz"},
            {"Authorization": "abc.def.ghi"},
        ],
    )
    def test_missing_or_malformed(self, headers: dict) -> None:
        with pytest.raises(MissingToken):
            extract_bearer_token(headers)


class TestAuthenticationGate:
    def test_valid_token(self) -> None:
        gate = AuthenticationGate(ISSUER)
        headers = {"Authorization": f"Bearer {ISSUER.issue(CREDS)}"}
        assert gate.authenticate(headers) == CREDS

    def test_invalid_token(self) -> None:
        gate = AuthenticationGate(ISSUER)
        with pytest.raises(InvalidToken):
            gate.authenticate({"Authorization": "Bearer not.a.token"})

    def test_token_from_other_issuer(self) -> None:
        other = SessionTokenIssuer("other-gate-secret-" + "o" * 32)
        gate = AuthenticationGate(ISSUER)
        with pytest.raises(InvalidToken):
            gate.authenticate({"Authorization": f"Bearer {other.issue(CREDS)}"})
