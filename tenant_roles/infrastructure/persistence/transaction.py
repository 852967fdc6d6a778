"""Atomic units of work on an AsyncSession.

atomic() runs its block in a SAVEPOINT when the session is already inside a
transaction, or in a new transaction (committed on exit) when it is not. A
transaction the session only autobegan for earlier reads has no owner, so
the outermost atomic() commits it once the block succeeds. A transaction
opened explicitly (get_db_transactional, session.begin()) is left for its
owner to commit.

Work that must only happen once the data is committed (cache invalidation,
event dispatch) is queued with UnitOfWork.after_commit(). The queue runs
after the committing owner finishes: atomic() itself, get_db_transactional
or commit(). Callbacks queued in a block that rolls back, or in an outer
transaction that rolls back, are discarded.
"""

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import SessionTransactionOrigin

from tenant_roles.domain.exceptions import TransactionFailureException

logger = logging.getLogger(__name__)

AfterCommitCallback = Callable[[], Awaitable[Any]]

_AFTER_COMMIT = "tenant_roles.after_commit"
_ROLLBACK_LISTENER = "tenant_roles.after_commit.listening"


def _pending(session: AsyncSession) -> list[AfterCommitCallback]:
    return session.info.setdefault(_AFTER_COMMIT, [])


def _discard_on_root_rollback(session: Any, previous_transaction: Any) -> None:
    # Savepoint rollbacks are handled by atomic(); only the root discards everything.
    if previous_transaction.parent is None:
        session.info.pop(_AFTER_COMMIT, None)


def _listen_for_rollback(session: AsyncSession) -> None:
    if session.info.get(_ROLLBACK_LISTENER):
        return
    event.listen(session.sync_session, "after_soft_rollback", _discard_on_root_rollback)
    session.info[_ROLLBACK_LISTENER] = True


class UnitOfWork:
    """Handle yielded by atomic(): the session plus post-commit hooks."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def after_commit(self, callback: AfterCommitCallback) -> None:
        """Run callback once the session's outermost transaction has committed."""
        _listen_for_rollback(self.session)
        _pending(self.session).append(callback)


async def run_after_commit(session: AsyncSession) -> None:
    """Run and clear the callbacks queued on session. Call after the outermost commit."""
    callbacks = session.info.pop(_AFTER_COMMIT, [])
    for callback in callbacks:
        await callback()


async def commit(session: AsyncSession) -> None:
    """Commit session, then run its post-commit callbacks."""
    await session.commit()
    await run_after_commit(session)


def _in_autobegun_root(session: AsyncSession) -> bool:
    if session.in_nested_transaction():
        return False
    root = session.sync_session.get_transaction()
    return root is not None and root.origin is SessionTransactionOrigin.AUTOBEGIN


@asynccontextmanager
async def atomic(session: AsyncSession, operation: str) -> AsyncIterator[UnitOfWork]:
    """Run the block atomically; roll it back and raise TransactionFailureException on store errors."""
    if session.in_transaction():
        owns_root = False
        commit_root = _in_autobegun_root(session)
        transaction = session.begin_nested()
    else:
        owns_root = True
        commit_root = False
        transaction = session.begin()
    mark = len(_pending(session))
    try:
        async with transaction:
            yield UnitOfWork(session)
        if commit_root:
            await session.commit()
    except SQLAlchemyError as e:
        del _pending(session)[mark:]
        logger.warning("Rolled back %s: %s", operation, e)
        raise TransactionFailureException(operation, str(e)) from e
    except BaseException:
        del _pending(session)[mark:]
        raise
    if owns_root or commit_root:
        await run_after_commit(session)
