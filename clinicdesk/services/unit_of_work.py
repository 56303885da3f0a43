"""
Transaction boundary for service operations.

`with uow:` scopes a transaction. Scopes nest: only the outermost one
commits, and an exception anywhere rolls back the whole scope. Side effects
registered with after_commit() run once the outer commit succeeded; their
failures are logged and never undo the committed state.
"""
import logging
from typing import Callable, List

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm.exc import StaleDataError

from clinicdesk.errors import ConcurrencyConflictError
from clinicdesk.extensions import db

logger = logging.getLogger(__name__)

# SQLSTATE serialization_failure / deadlock_detected
_CONFLICT_SQLSTATES = {'40001', '40P01'}
_CONFLICT_MESSAGES = ('could not serialize', 'deadlock', 'database is locked')


def is_conflict(exc: BaseException) -> bool:
    if isinstance(exc, StaleDataError):
        return True
    if isinstance(exc, DBAPIError):
        orig = exc.orig
        code = getattr(orig, 'pgcode', None) or getattr(orig, 'sqlstate', None)
        if code in _CONFLICT_SQLSTATES:
            return True
        message = str(orig).lower()
        return any(marker in message for marker in _CONFLICT_MESSAGES)
    return False


class UnitOfWork:
    def __init__(self, session=None):
        self._session = session
        self._depth = 0
        self._after_commit: List[Callable[[], None]] = []

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    @property
    def active(self) -> bool:
        return self._depth > 0

    def after_commit(self, callback: Callable[[], None]):
        if not self.active:
            raise RuntimeError('after_commit() needs an open unit of work')
        self._after_commit.append(callback)

    def __enter__(self):
        self._depth += 1
        return self

    def _rollback_after(self, exc):
        # the caller sees the original error
        try:
            self.session.rollback()
        except Exception as e:
            logger.error("Rollback after %s failed: %s", type(exc).__name__, e, exc_info=True)

    def __exit__(self, exc_type, exc, tb):
        self._depth -= 1
        if self._depth > 0:
            return False

        callbacks, self._after_commit = self._after_commit, []
        if exc is not None:
            self._rollback_after(exc)
            if is_conflict(exc):
                raise ConcurrencyConflictError(f'Concurrent update detected: {exc}') from exc
            return False

        try:
            self.session.commit()
        except Exception as e:
            self.session.rollback()
            if is_conflict(e):
                raise ConcurrencyConflictError(f'Concurrent update detected: {e}') from e
            logger.error("Commit failed: %s", e, exc_info=True)
            raise

        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.warning("Post-commit hook failed: %s", e, exc_info=True)
        return False
