from contextlib import contextmanager

import structlog
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

logger = structlog.get_logger(__name__)


class ReactionError(Exception):
    detail = "Reaction error"

    def __init__(self, detail: str | None = None):
        super().__init__(detail or self.detail)
        self.detail = detail or self.detail


class UnauthenticatedError(ReactionError):
    detail = "Not authenticated"


class InvalidKindError(ReactionError):
    detail = "Invalid reaction kind"


class InvalidTargetError(ReactionError):
    detail = "Invalid reaction target"


class ConflictError(ReactionError):
    detail = "Reaction already exists"


class NotFoundError(ReactionError):
    detail = "Reaction not found"


class StoreUnavailableError(ReactionError):
    detail = "Reaction store unavailable"


@contextmanager
def store_errors(db: Session):
    """Roll back and re-raise infrastructure failures as StoreUnavailableError."""
    try:
        yield
    except (OperationalError, PoolTimeoutError) as e:
        db.rollback()
        logger.warning("store_unavailable", error=str(e))
        raise StoreUnavailableError() from e
    except DBAPIError as e:
        db.rollback()
        if e.connection_invalidated:
            logger.warning("store_connection_lost", error=str(e))
            raise StoreUnavailableError() from e
        raise
