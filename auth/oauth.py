"""
auth/oauth.py -- Google ID token verification via the tokeninfo endpoint.

The client-side Google Sign-In flow hands us an ID token. We do not verify
its signature locally; Google's tokeninfo endpoint does that and returns the
decoded claims, or a 4xx for a bad/expired token.

Security notes:
  [H1] Email verification is mandatory. A token whose email_verified claim is
       missing or false is rejected -- an unverified address could belong to
       someone else.

  Audience: when GOOGLE_CLIENT_ID is configured, the aud claim must equal it,
       so ID tokens minted for some other application are not accepted.

  One module-level requests.Session for connection pooling, max_redirects=3,
  5 second timeout. No retries.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging

import requests

from auth.errors import ExternalTokenRejected
from auth.models import ExternalIdentity

logger = logging.getLogger("accountguard.auth.oauth")

GOOGLE_TOKENINFO_URL = "https://oauth2.googleapis.com/tokeninfo"
_TIMEOUT_SECONDS = 5

_session = requests.Session()
_session.max_redirects = 3


def _truthy(value) -> bool:
    # tokeninfo returns claims as strings ("true"), decoded JWTs as bools
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == "true"


class GoogleTokenVerifier:
    """Verify a Google ID token and return the asserted identity.

    Usage:
        verifier = GoogleTokenVerifier(client_id=settings.google_client_id)
        identity = verifier.verify(id_token)
    """

    def __init__(
        self,
        client_id: str = "",
        tokeninfo_url: str = GOOGLE_TOKENINFO_URL,
        session: requests.Session | None = None,
    ) -> None:
        self.client_id = client_id
        self.tokeninfo_url = tokeninfo_url
        self._session = session or _session

    def verify(self, token: str) -> ExternalIdentity:
        """Return the ExternalIdentity for *token*. Raises ExternalTokenRejected on any failure."""
        if not token:
            raise ExternalTokenRejected("Missing Google token.")
        try:
            resp = self._session.get(self.tokeninfo_url, params={"id_token": token}, timeout=_TIMEOUT_SECONDS)
        except requests.RequestException as exc:
            logger.error("verify: Google tokeninfo request failed: %s", exc)
            raise ExternalTokenRejected("Could not reach Google to verify the token.") from exc

        if resp.status_code != 200:
            logger.warning("verify: Google rejected token (status %d)", resp.status_code)
            raise ExternalTokenRejected()

        try:
            info = resp.json()
        except ValueError as exc:
            logger.error("verify: unparseable tokeninfo response")
            raise ExternalTokenRejected("Failed to parse token info.") from exc
        if not isinstance(info, dict):
            raise ExternalTokenRejected("Failed to parse token info.")

        email = info.get("email")
        if not email:
            logger.warning("verify: email not found in Google token response")
            raise ExternalTokenRejected("Email not found in Google token response.")

        if not _truthy(info.get("email_verified", False)):  # [H1]
            logger.warning("verify: Google email is not verified")
            raise ExternalTokenRejected("Google account email is not verified.")

        if self.client_id and info.get("aud") != self.client_id:
            logger.warning("verify: token audience does not match configured client id")
            raise ExternalTokenRejected("Google token was issued for another application.")

        return ExternalIdentity(
            email=email,
            email_verified=True,
            name=info.get("name"),
            given_name=info.get("given_name"),
            family_name=info.get("family_name"),
        )
