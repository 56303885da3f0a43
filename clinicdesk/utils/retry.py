"""
Automatic retry for transaction conflicts.

Only ConcurrencyConflictError is retried; every other error surfaces on the
first attempt. Retrying is skipped when the call joins an already open unit
of work, since the outer transaction owns the retry.
"""
import logging
from functools import wraps

from flask import current_app, has_app_context
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from clinicdesk.errors import ConcurrencyConflictError

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 3
DEFAULT_MAX_WAIT = 0.5


def _settings():
    if has_app_context():
        return (
            current_app.config.get('CONFLICT_RETRY_ATTEMPTS', DEFAULT_ATTEMPTS),
            current_app.config.get('CONFLICT_RETRY_MAX_WAIT', DEFAULT_MAX_WAIT),
        )
    return DEFAULT_ATTEMPTS, DEFAULT_MAX_WAIT


def _joins_open_transaction(args, kwargs):
    from clinicdesk.services.unit_of_work import UnitOfWork

    candidates = list(args[:2]) + [kwargs.get('uow')]
    return any(isinstance(c, UnitOfWork) and c.active for c in candidates)


def retry_on_conflict(func):
    """Re-run the whole operation in a fresh transaction on conflict"""
    @wraps(func)
    def wrapper(*args, **kwargs):
        if _joins_open_transaction(args, kwargs):
            return func(*args, **kwargs)

        attempts, max_wait = _settings()
        retryer = Retrying(
            retry=retry_if_exception_type(ConcurrencyConflictError),
            stop=stop_after_attempt(max(1, attempts)),
            wait=wait_exponential(multiplier=0.05, max=max_wait) + wait_random(0, min(0.05, max_wait)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        return retryer(func, *args, **kwargs)
    return wrapper
