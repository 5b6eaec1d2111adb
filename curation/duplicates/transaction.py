"""Single-transaction execution for mutating duplicate review operations."""

from collections.abc import Callable, Iterable
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from curation.duplicates.errors import (
    DuplicateResolutionError,
    OperationResult,
    StorageFailure,
)
from curation.utils.logging import operation_logger


def run_in_transaction(
    session: Session,
    operation: str,
    ids: Iterable[str],
    work: Callable[[], dict[str, Any]],
) -> OperationResult:
    """
    Run work() and commit, or roll back everything it did.

    Categorized failures become a failed OperationResult. Database errors
    become StorageFailure; the raw driver text goes to the log only.
    Anything else is rolled back and re-raised.

    Args:
        session: Session with no pending work of its own
        operation: Operation name for the audit log
        ids: Lesson ids involved, for the audit log
        work: Performs the writes and returns the success payload

    Returns:
        OperationResult with work()'s payload on success
    """
    ids = list(ids)
    log = operation_logger(operation, ids)
    try:
        data = work()
        session.commit()
    except DuplicateResolutionError as e:
        session.rollback()
        log.warning(f"refused: {e.category.value} - {e.message}")
        return OperationResult.failed(e)
    except SQLAlchemyError as e:
        session.rollback()
        log.error(f"failed, transaction rolled back: {e}")
        return OperationResult.failed(StorageFailure(
            f"{operation} failed: the transaction was rolled back and no changes were made",
            hint="Retry the operation. If it keeps failing, check the database logs.",
        ))
    except Exception:
        session.rollback()
        log.exception("crashed, transaction rolled back")
        raise

    log.info("committed")
    return OperationResult.ok(**data)
