"""Retry wrapper, optimistic locking, and the first-allocation race on number sequences."""

from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from bookshop.extensions import db
from bookshop.models import DocumentSequence, Item
from bookshop.services import customer_service
from bookshop.services.concurrency import ConcurrencyConflict, run_with_retry
from bookshop.services.document_service import (
    ACCOUNT,
    DocumentSequenceError,
    SequenceInitRace,
    next_document_number,
)


class TestRunWithRetry:
    def test_conflict_is_retried_on_a_rolled_back_session(self, db_session):
        drafts = []

        def work():
            draft = Item(item_code=f"TMP-{len(drafts)}", item_name="Draft", unit_price=Decimal("1.00"))
            db.session.add(draft)
            drafts.append(draft)
            if len(drafts) == 1:
                raise StaleDataError("items row changed underneath")
            return "done"

        assert run_with_retry(work, backoff_base=0) == "done"
        assert len(drafts) == 2
        assert drafts[0] not in db.session
        assert drafts[1] in db.session

    def test_last_conflict_is_raised_when_attempts_run_out(self, db_session):
        calls = []

        def work():
            calls.append(1)
            raise OperationalError("UPDATE items", {}, Exception("database is locked"))

        with pytest.raises(OperationalError):
            run_with_retry(work, attempts=3, backoff_base=0)
        assert len(calls) == 3

    def test_other_errors_are_not_retried(self, db_session):
        calls = []

        def work():
            calls.append(1)
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            run_with_retry(work, backoff_base=0)
        assert calls == [1]


def test_concurrent_version_bump_makes_stale_write_fail(db_session, make_item):
    item = make_item("BK-1", stock=5)
    assert item.version_id == 1

    # Another transaction sells the whole stock behind this session's back
    items = Item.__table__
    db_session.execute(
        items.update()
        .where(items.c.id == item.id)
        .values(stock_quantity=0, version_id=items.c.version_id + 1)
    )

    item.reduce_stock(5)
    with pytest.raises(StaleDataError):
        db_session.flush()
    db_session.rollback()


class TestSequenceInitRace:
    @pytest.fixture
    def lost_first_insert(self, db_session, monkeypatch):
        """The counter row exists, but this session's first UPDATE missed it."""
        db_session.add(DocumentSequence(document_type=ACCOUNT, next_number=7))
        db_session.commit()

        real_execute = db.session.execute
        missed = []

        def execute(stmt, *args, **kwargs):
            if not missed:
                missed.append(stmt)
                return SimpleNamespace(rowcount=0)
            return real_execute(stmt, *args, **kwargs)

        monkeypatch.setattr(db.session, "execute", execute)
        return missed

    def test_race_is_reported_as_retryable(self, lost_first_insert):
        with pytest.raises(SequenceInitRace) as exc_info:
            next_document_number(document_type=ACCOUNT, prefix="C")
        assert isinstance(exc_info.value, DocumentSequenceError)
        assert isinstance(exc_info.value, ConcurrencyConflict)

    def test_create_customer_recovers(self, lost_first_insert):
        c = customer_service.create_customer(patch={
            "name": "Sunil Silva",
            "address": "3 Lake Drive, Kurunegala",
            "telephone_number": "+94372223344",
        })
        assert lost_first_insert
        assert c.account_number == "C000007"
        assert db.session.query(DocumentSequence).filter_by(document_type=ACCOUNT).one().next_number == 8
