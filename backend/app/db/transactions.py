import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import StorageFailure

logger = logging.getLogger(__name__)


def commit_or_fail(db: Session) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Commit failed: %s", exc, exc_info=True)
        raise StorageFailure() from exc
