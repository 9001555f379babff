"""
Bounded retry for ledger writes that lose an optimistic-concurrency race.
"""
import logging
import random
import time

from django.db import IntegrityError, OperationalError, transaction

from stock.services.base_service import ConcurrentUpdateConflictError, ledger_setting


logger = logging.getLogger(__name__)


def backoff_delay(attempt: int) -> float:
    """Full-jitter exponential backoff for the given 1-based attempt."""
    base = float(ledger_setting("RETRY_BASE_DELAY"))
    cap = float(ledger_setting("RETRY_MAX_DELAY"))
    ceiling = min(cap, base * (2 ** (attempt - 1)))
    return random.uniform(0, ceiling) if ceiling > 0 else 0


def run_with_retry(func, *args, **kwargs):
    """
    Run func inside transaction.atomic, retrying on write conflicts.

    Inside an outer atomic block there is nothing safe to retry (the outer
    transaction may already be broken), so the function runs once and the
    conflict propagates to whoever owns the outermost block.
    """
    if transaction.get_connection().in_atomic_block:
        with transaction.atomic():
            return _translate_conflicts(func, *args, **kwargs)

    attempts = max(1, int(ledger_setting("RETRY_ATTEMPTS")))
    for attempt in range(1, attempts + 1):
        try:
            with transaction.atomic():
                return _translate_conflicts(func, *args, **kwargs)
        except ConcurrentUpdateConflictError:
            if attempt == attempts:
                logger.warning(f"{func.__qualname__}: giving up after {attempts} conflicting attempts")
                raise
            delay = backoff_delay(attempt)
            logger.warning(
                f"{func.__qualname__}: write conflict on attempt {attempt}/{attempts}, retrying in {delay:.3f}s"
            )
            time.sleep(delay)


def _translate_conflicts(func, *args, **kwargs):
    try:
        return func(*args, **kwargs)
    except IntegrityError as e:
        # Lost the race to create a balance row under the unique key
        raise ConcurrentUpdateConflictError(f"Unique key conflict: {e}") from e
    except OperationalError as e:
        # Serialization failure, deadlock or lock timeout
        raise ConcurrentUpdateConflictError(f"Database conflict: {e}") from e

