"""
Entity store plumbing shared by the workflow components.

Every "at most one" rule lives in a database constraint; the helpers here turn
constraint violations into domain errors and give each component a dialect
aware single-statement upsert. Only reads are retried on transient failures.
"""
import time
import logging
from contextlib import contextmanager
from functools import wraps
from typing import List

from flask import current_app, has_app_context
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, OperationalError

from shared.errors import Conflict
from .models import db

logger = logging.getLogger(__name__)

READ_BACKOFF_MS: List[int] = [50, 150, 300]


def dialect_insert(model):
    """Return an INSERT construct that supports ON CONFLICT for the bound dialect."""
    dialect = db.session.get_bind().dialect.name
    if dialect == 'postgresql':
        return postgresql.insert(model)
    if dialect == 'sqlite':
        return sqlite.insert(model)
    raise RuntimeError(f"Upsert is not supported on the '{dialect}' dialect")


@contextmanager
def constraint_guard(message: str):
    """Roll back and raise Conflict when a uniqueness constraint rejects the write."""
    try:
        yield
    except IntegrityError as e:
        db.session.rollback()
        logger.warning(f"Constraint violation: {message} ({e.orig})")
        raise Conflict(message) from e


def _retry_attempts() -> int:
    if has_app_context():
        return current_app.config.get('READ_RETRY_ATTEMPTS', 3)
    return 3


def with_read_retry(func):
    """
    Retry a side-effect free read on transient store errors.

    Never apply this to a write: several writes are upserts, and an apparent
    failure may hide a write that already landed.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        attempts = max(1, _retry_attempts())
        for attempt in range(attempts):
            try:
                return func(*args, **kwargs)
            except OperationalError as e:
                db.session.rollback()
                if attempt >= attempts - 1:
                    raise
                delay = READ_BACKOFF_MS[min(attempt, len(READ_BACKOFF_MS) - 1)] / 1000
                logger.warning(f"Retry {attempt + 1}/{attempts} of {func.__name__} after error: {e}. Waiting {delay}s")
                time.sleep(delay)
    return wrapper


def stage(record) -> None:
    """
    Add a row that must commit together with the next write.

    Call it after any retried read: a retry rolls the session back and would
    discard anything staged before it.
    """
    if record is not None:
        db.session.add(record)
