from typing import Protocol

from sqlalchemy.orm import Session

from reaction_engine.models import User
from reaction_engine.schemas.reaction import DisplayIdentity

UNKNOWN_IDENTITY = DisplayIdentity(name="Unknown")


class ProfileDirectory(Protocol):
    def resolve(self, user_ids: list[int]) -> dict[int, DisplayIdentity]: ...


class UserProfileDirectory:
    """Looks reactors up in the user table owned by the account service."""

    def __init__(self, db: Session):
        self.db = db

    def resolve(self, user_ids: list[int]) -> dict[int, DisplayIdentity]:
        if not user_ids:
            return {}

        users = self.db.query(User).filter(User.id.in_(set(user_ids))).all()
        return {
            user.id: DisplayIdentity(
                name=user.name or user.username, avatar_url=user.avatar_url
            )
            for user in users
        }
