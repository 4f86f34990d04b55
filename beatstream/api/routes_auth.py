"""
Auth endpoints:
- POST /auth/login (Google ID token -> session JWT)
- GET /auth/me

The frontend expects a JSON response containing { token, token_type, user }.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from beatstream.api.auth import TokenIdentity, create_access_token, get_current_identity
from beatstream.api.db import db_session_dep
from beatstream.api.errors import NotFoundError
from beatstream.api.identity import GoogleIdentityVerifier, get_identity_verifier
from beatstream.api.models import Playlist, PlayHistory, Role, User
from beatstream.api.schemas import LoginRequest, LoginResponse, MeResponse, UserResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Login with Google",
    description="Verifies a Google ID token, creates or refreshes the user, and returns a session JWT.",
    operation_id="login_user",
)
def login(
    req: LoginRequest,
    db: Session = Depends(db_session_dep),
    verifier: GoogleIdentityVerifier = Depends(get_identity_verifier),
) -> LoginResponse:
    """Login (and implicit sign-up) keyed by the verified email."""
    claims = verifier.verify(req.id_token)

    user = db.execute(select(User).where(User.email == claims.email)).scalar_one_or_none()
    if user is None:
        user = User(email=claims.email, role=Role.USER.value)
        db.add(user)
        logger.info("user_created: email=%s", claims.email)

    user.google_id = claims.subject
    user.name = claims.name or user.name or claims.email.split("@", 1)[0]
    user.avatar_url = claims.picture or user.avatar_url
    db.flush()

    token = create_access_token(user_id=user.id, email=user.email, role=user.role)
    return LoginResponse(token=token, token_type="bearer", user=UserResponse.model_validate(user))


@router.get(
    "/me",
    response_model=MeResponse,
    summary="Current user",
    description="Profile of the logged-in user with playlist and play counts.",
    operation_id="get_me",
)
def me(
    identity: TokenIdentity = Depends(get_current_identity),
    db: Session = Depends(db_session_dep),
) -> MeResponse:
    user = db.get(User, identity.user_id)
    if user is None:
        raise NotFoundError("User not found.")

    playlist_count = db.scalar(select(func.count()).select_from(Playlist).where(Playlist.user_id == user.id))
    play_count = db.scalar(select(func.count()).select_from(PlayHistory).where(PlayHistory.user_id == user.id))
    return MeResponse(
        **UserResponse.model_validate(user).model_dump(),
        playlist_count=playlist_count or 0,
        play_count=play_count or 0,
    )
