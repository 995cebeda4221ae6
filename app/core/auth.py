"""
Bearer-token owner resolution.

Every user has a static api_token; requests send it as
`Authorization: Bearer <token>`. Routers depend on get_current_user and
pass only user.id down to the services.
"""
from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from app.core.errors import AuthenticationError
from app.db.base import get_db
from app.models.user import User


def get_current_user(
    authorization: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> User:
    if not authorization:
        raise AuthenticationError("Missing bearer token.")
    scheme, _, token = authorization.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise AuthenticationError("Authorization header must be 'Bearer <token>'.")

    user = db.query(User).filter(User.api_token == token).first()
    if user is None:
        raise AuthenticationError("Invalid token.")
    return user
