"""
Users router: registration, login and the caller's profile.

Registration and login return a JWT; the profile endpoints require it as
`Authorization: Bearer <token>`.

Endpoints:
  POST /api/users          - register
  POST /api/users/login    - exchange email + password for a token
  GET  /api/users/profile  - current user
  PUT  /api/users/profile  - update name, email or password
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status

from trivia_api.auth.dependencies import Store, get_current_user
from trivia_api.auth.hashing import hash_password, verify_password
from trivia_api.auth.tokens import create_access_token
from trivia_api.core.errors import AuthError, ConflictError
from trivia_api.models.user import User
from trivia_api.schemas.users import (
    AuthenticatedUserOut,
    AuthEnvelope,
    UserEnvelope,
    UserLogin,
    UserOut,
    UserRegister,
    UserUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Users"])

CurrentUser = Annotated[User, Depends(get_current_user)]


def _with_token(user: User) -> AuthEnvelope:
    out = UserOut.model_validate(user)
    return AuthEnvelope(
        user=AuthenticatedUserOut(**out.model_dump(), token=create_access_token(user.id))
    )


# ── 1. Register ─────────────────────────────────────────────
@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=AuthEnvelope,
    summary="Register a new user",
)
async def register_user(body: UserRegister, store: Store) -> AuthEnvelope:
    if await store.find_user_by_email(body.email) is not None:
        raise ConflictError("User already exists")

    user = await store.create_user(body.name, body.email, hash_password(body.password))
    logger.info("Registered user %s", user.id)
    return _with_token(user)


# ── 2. Login ────────────────────────────────────────────────
@router.post(
    "/login",
    response_model=AuthEnvelope,
    summary="Log in and receive a token",
)
async def login_user(body: UserLogin, store: Store) -> AuthEnvelope:
    """Unknown email and wrong password produce the same 401."""
    user = await store.find_user_by_email(body.email)
    if user is None or not verify_password(body.password, user.password_hash):
        raise AuthError("Invalid email or password")
    return _with_token(user)


# ── 3. Profile ──────────────────────────────────────────────
@router.get(
    "/profile",
    response_model=UserEnvelope,
    summary="Current user's profile",
)
async def get_profile(user: CurrentUser) -> UserEnvelope:
    return UserEnvelope(user=UserOut.model_validate(user))


@router.put(
    "/profile",
    response_model=UserEnvelope,
    summary="Update the current user's profile",
)
async def update_profile(body: UserUpdate, user: CurrentUser, store: Store) -> UserEnvelope:
    fields: dict[str, object] = {}
    if body.name is not None:
        fields["name"] = body.name
    if body.email is not None and body.email.lower() != user.email:
        if await store.find_user_by_email(body.email) is not None:
            raise ConflictError("Email is already in use")
        fields["email"] = body.email.lower()
    if body.password is not None:
        fields["password_hash"] = hash_password(body.password)

    if fields:
        user = await store.update_user(user, **fields)
    return UserEnvelope(user=UserOut.model_validate(user))
