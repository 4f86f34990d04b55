"""
Session tokens: issuing and verifying the backend's own JWT.

The frontend sends:
- Authorization: Bearer <token>

The token is issued by POST /auth/login after Google sign-in and carries the
user id, email and role. Handlers receive the decoded identity through the
`get_current_identity` / `require_admin` dependencies; no database lookup is
needed to authorize a request.
"""

from __future__ import annotations

import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from beatstream.api.errors import AuthenticationError, AuthorizationError
from beatstream.api.models import Role

_bearer_scheme = HTTPBearer(auto_error=False)

_DEFAULT_EXPIRES_MINUTES = 7 * 24 * 60


def _jwt_secret() -> str:
    secret = os.getenv("JWT_SECRET")
    if not secret:
        raise RuntimeError("JWT_SECRET env var is required.")
    return secret


def _jwt_algorithm() -> str:
    return os.getenv("JWT_ALGORITHM", "HS256")


def _jwt_exp_minutes() -> int:
    try:
        return int(os.getenv("JWT_EXPIRES_MINUTES", str(_DEFAULT_EXPIRES_MINUTES)))
    except ValueError:
        return _DEFAULT_EXPIRES_MINUTES


@dataclass(frozen=True)
class TokenIdentity:
    """Identity decoded from a valid session token."""

    user_id: uuid.UUID
    email: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value


# PUBLIC_INTERFACE
def create_access_token(*, user_id: uuid.UUID, email: str, role: str) -> str:
    """
    Create a signed session JWT.

    Token contains:
      - sub: user_id (string UUID)
      - email
      - role
      - iat / exp (7 days by default, JWT_EXPIRES_MINUTES overrides)

    Returns:
        JWT string.
    """
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=_jwt_exp_minutes())
    payload: Dict[str, Any] = {
        "sub": str(user_id),
        "email": email,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, _jwt_secret(), algorithm=_jwt_algorithm())


# PUBLIC_INTERFACE
def decode_access_token(token: str) -> TokenIdentity:
    """
    Verify signature/expiry and return the identity carried by the token.

    Raises:
        AuthenticationError: wrong signature, expired, malformed or missing claims.
    """
    try:
        payload = jwt.decode(token, _jwt_secret(), algorithms=[_jwt_algorithm()])
    except JWTError:
        raise AuthenticationError("Invalid or expired token.")

    sub = payload.get("sub")
    email = payload.get("email")
    role = payload.get("role")
    if not sub or not email or not role:
        raise AuthenticationError("Invalid token payload.")

    try:
        user_id = uuid.UUID(str(sub))
    except ValueError:
        raise AuthenticationError("Invalid token payload.")

    return TokenIdentity(user_id=user_id, email=str(email), role=str(role))


# PUBLIC_INTERFACE
def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> TokenIdentity:
    """
    FastAPI dependency that returns the authenticated identity.

    Raises 401 if the bearer token is missing or fails verification.
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationError("Missing bearer token. Please log in first.")
    return decode_access_token(credentials.credentials)


# PUBLIC_INTERFACE
def require_admin(identity: TokenIdentity = Depends(get_current_identity)) -> TokenIdentity:
    """FastAPI dependency for admin-only routes; 403 unless the token's role is ADMIN."""
    if not identity.is_admin:
        raise AuthorizationError("Admin access required.")
    return identity
