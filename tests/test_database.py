"""Unit-of-work retry and error status tests."""

import pytest
from sqlalchemy.exc import OperationalError

from app.core.errors import (
    BelowMinimumError,
    ConcurrencyConflictError,
    ValidationFailedError,
)
from app.database import run_in_transaction


def locked():
    return OperationalError("UPDATE wallet_accounts", {}, Exception("database is locked"))


class TestRunInTransaction:
    def test_retries_then_commits(self, session):
        calls = []

        def work():
            calls.append(1)
            if len(calls) < 3:
                raise locked()
            return "done"

        assert run_in_transaction(session, work) == "done"
        assert len(calls) == 3

    def test_gives_up_with_conflict(self, session):
        calls = []

        def work():
            calls.append(1)
            raise locked()

        with pytest.raises(ConcurrencyConflictError) as exc:
            run_in_transaction(session, work, attempts=2)
        assert len(calls) == 2
        assert exc.value.status_code == 503

    def test_other_errors_are_not_retried(self, session):
        calls = []

        def work():
            calls.append(1)
            raise ValueError("boom")

        with pytest.raises(ValueError):
            run_in_transaction(session, work)
        assert len(calls) == 1


class TestErrorStatus:
    def test_validation_failures_are_422(self):
        assert ValidationFailedError().status_code == 422
        assert BelowMinimumError().reason == "BelowMinimum"
