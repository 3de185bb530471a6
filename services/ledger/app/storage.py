"""
Ledger Service: transaction runner

Every write goes through run_transaction():

  1. run the operation (reads, compare-and-set writes, event appends)
  2. commit
  3. on ConcurrencyConflict: roll back and run the whole operation again
  4. on timeout or a dead connection: roll back, raise StorageUnavailable
  5. on anything else (validation errors, cancellation): roll back, re-raise

The operation is re-run from scratch on retry, so it must read all state it
depends on inside the callable.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from . import config
from .errors import ConcurrencyConflict, StorageUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CONNECTION_ERRORS = (OperationalError, InterfaceError, OSError)


async def _rollback(session: AsyncSession) -> None:
    try:
        await session.rollback()
    except _CONNECTION_ERRORS:
        logger.warning("Rollback failed, connection is gone", exc_info=True)


async def run_transaction(
    session: AsyncSession,
    operation: Callable[[], Awaitable[T]],
    *,
    timeout: float | None = None,
    retries: int | None = None,
) -> T:
    timeout = config.STORAGE_TIMEOUT if timeout is None else timeout
    retries = config.MAX_RETRIES if retries is None else retries

    attempt = 0
    while True:
        attempt += 1
        try:
            result = await asyncio.wait_for(operation(), timeout)
            await asyncio.wait_for(session.commit(), timeout)
            return result
        except ConcurrencyConflict as e:
            await _rollback(session)
            if attempt >= retries:
                raise StorageUnavailable(
                    f"Gave up after {attempt} concurrent update conflicts on item {e.item_id}"
                ) from e
            logger.warning("Retrying after conflict (attempt %d): %s", attempt, e)
        except asyncio.TimeoutError as e:
            await _rollback(session)
            raise StorageUnavailable(f"Storage did not respond within {timeout}s") from e
        except _CONNECTION_ERRORS as e:
            await _rollback(session)
            raise StorageUnavailable(f"Storage unavailable: {e}") from e
        except BaseException:
            await _rollback(session)
            raise


async def run_query(
    session: AsyncSession,
    operation: Callable[[], Awaitable[T]],
    *,
    timeout: float | None = None,
) -> T:
    """Read-only counterpart of run_transaction: bounded, no commit, no retry."""
    timeout = config.STORAGE_TIMEOUT if timeout is None else timeout
    try:
        return await asyncio.wait_for(operation(), timeout)
    except asyncio.TimeoutError as e:
        raise StorageUnavailable(f"Storage did not respond within {timeout}s") from e
    except _CONNECTION_ERRORS as e:
        raise StorageUnavailable(f"Storage unavailable: {e}") from e
