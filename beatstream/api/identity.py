"""
Google Sign-In verification.

The frontend obtains an ID token from Google Identity Services and posts it to
/auth/login. We verify it against Google's public certificates, bound to our
OAuth client id, and keep only the claims we store on the user row.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, Dict, Optional

from google.auth import exceptions as google_exceptions
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token as google_id_token

from beatstream.api.errors import AuthenticationError, UpstreamError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IdentityClaims:
    subject: str
    email: str
    name: Optional[str] = None
    picture: Optional[str] = None


class GoogleIdentityVerifier:
    """Verifies Google ID tokens for one registered OAuth client id."""

    def __init__(
        self,
        client_id: str,
        verify: Callable[..., Dict[str, Any]] = google_id_token.verify_oauth2_token,
    ) -> None:
        self.client_id = client_id
        self._verify = verify
        self._request = google_requests.Request()

    def verify(self, token: str) -> IdentityClaims:
        """
        Verify `token` and extract subject/email/name/picture.

        Raises:
            AuthenticationError: the token is invalid, expired, for another audience, or has no email.
            UpstreamError: Google's certificate endpoint could not be reached.
        """
        try:
            payload = self._verify(token, self._request, audience=self.client_id)
        except google_exceptions.TransportError as exc:
            logger.warning("identity_transport_error: %s", exc)
            raise UpstreamError("Could not reach the identity provider.")
        except (ValueError, google_exceptions.GoogleAuthError) as exc:
            logger.info("identity_rejected: %s", exc)
            raise AuthenticationError("Invalid Google token.")

        email = payload.get("email")
        subject = payload.get("sub")
        if not email or not subject:
            raise AuthenticationError("Google token has no email.")

        return IdentityClaims(
            subject=str(subject),
            email=str(email).lower().strip(),
            name=payload.get("name"),
            picture=payload.get("picture"),
        )


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_identity_verifier() -> GoogleIdentityVerifier:
    """FastAPI dependency returning the process-wide verifier (GOOGLE_CLIENT_ID required)."""
    client_id = os.getenv("GOOGLE_CLIENT_ID")
    if not client_id:
        raise RuntimeError("GOOGLE_CLIENT_ID env var is required.")
    return GoogleIdentityVerifier(client_id)
