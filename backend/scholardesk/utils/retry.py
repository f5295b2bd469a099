"""
Retry logic for units of work that race on the same assignment row.

Assignment rows carry a version column; a flush against a stale version raises
StaleDataError. The decorated function is rolled back and re-run from a fresh
read, so checks like the release barrier always see the committed ledger.
"""
import logging
from functools import wraps
from typing import Callable

from sqlalchemy.orm.exc import StaleDataError
from tenacity import (
    Retrying,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

from scholardesk.config import settings
from scholardesk.exceptions import ConflictError

logger = logging.getLogger(__name__)


def retry_on_version_conflict(func: Callable) -> Callable:
    """
    Re-run `func(db, ...)` when another request committed the same assignment first.

    Any exception rolls the session back before it propagates, so a failed unit
    never leaves half-applied changes in the session.
    """
    @wraps(func)
    def wrapper(db, *args, **kwargs):
        retrying = Retrying(
            stop=stop_after_attempt(max(1, settings.CONFLICT_RETRY_ATTEMPTS)),
            wait=wait_exponential(multiplier=0.05, max=0.5),
            retry=retry_if_exception_type(StaleDataError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    try:
                        return func(db, *args, **kwargs)
                    except Exception:
                        db.rollback()
                        raise
        except StaleDataError:
            logger.warning("Version conflict persisted after %s attempts in %s", settings.CONFLICT_RETRY_ATTEMPTS, func.__name__)
            raise ConflictError(
                "Assignment was modified by another request, please retry",
                reason="VERSION_CONFLICT",
            )

    return wrapper
