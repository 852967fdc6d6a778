"""Integration tests for atomic() units of work and their post-commit callbacks (requires DB)."""

import pytest
from sqlalchemy.exc import SQLAlchemyError

from tenant_roles.domain.exceptions import TransactionFailureException
from tenant_roles.infrastructure.persistence.transaction import atomic, commit


def _recorder(calls: list[str], name: str):
    async def callback() -> None:
        calls.append(name)

    return callback


@pytest.mark.requires_db
async def test_atomic_owning_the_transaction_runs_callbacks_after_commit(db_session) -> None:
    calls: list[str] = []

    async with atomic(db_session, "outer") as uow:
        uow.after_commit(_recorder(calls, "outer"))
        assert calls == []

    assert calls == ["outer"]
    assert not db_session.in_transaction()


@pytest.mark.requires_db
async def test_failed_savepoint_drops_only_its_callbacks(db_session) -> None:
    calls: list[str] = []

    async with atomic(db_session, "outer") as uow:
        uow.after_commit(_recorder(calls, "outer"))
        with pytest.raises(TransactionFailureException) as exc_info:
            async with atomic(db_session, "inner") as inner:
                inner.after_commit(_recorder(calls, "inner"))
                raise SQLAlchemyError("database is locked")
        assert isinstance(exc_info.value.__cause__, SQLAlchemyError)

    assert calls == ["outer"]


@pytest.mark.requires_db
async def test_explicit_outer_transaction_owns_the_callbacks(db_session) -> None:
    """Inside session.begin() callbacks wait for the owner; commit() runs them."""
    calls: list[str] = []
    await db_session.begin()

    async with atomic(db_session, "step") as uow:
        uow.after_commit(_recorder(calls, "step"))
    assert calls == []

    await commit(db_session)
    assert calls == ["step"]


@pytest.mark.requires_db
async def test_outer_rollback_discards_queued_callbacks(db_session) -> None:
    calls: list[str] = []

    with pytest.raises(RuntimeError):
        async with db_session.begin():
            async with atomic(db_session, "step") as uow:
                uow.after_commit(_recorder(calls, "step"))
            raise RuntimeError("request failed")

    await commit(db_session)
    assert calls == []
