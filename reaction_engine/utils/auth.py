from datetime import datetime
from typing import Annotated

from fastapi import Cookie, Depends
import jwt
import structlog
from sqlalchemy.orm import Session

from reaction_engine.config import settings
from reaction_engine.db import get_db
from reaction_engine.errors import store_errors
from reaction_engine.models import User

logger = structlog.get_logger(__name__)


def create_token(username: str, user_id: int, expire_date: datetime):
    payload = {
        "username": username,
        "id": user_id,
        "exp": expire_date,
    }
    token = jwt.encode(
        payload,
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
    )
    return token


def get_user(
    auth_token: Annotated[str | None, Cookie()] = None,
    db: Session = Depends(get_db),
):
    """Resolve the session cookie to a User, or None for anonymous callers."""
    if not auth_token:
        return None
    try:
        payload = jwt.decode(
            auth_token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM]
        )
    except jwt.InvalidTokenError as e:
        logger.info("auth_token_rejected", error=str(e))
        return None

    user_id = payload.get("id")
    if not user_id:
        return None
    with store_errors(db):
        return db.get(User, user_id)


def get_user_id(user: User | None = Depends(get_user)):
    if not user:
        return None
    return user.id
