"""Flask CLI command groups."""

import pytest

from bookshop.models import Customer, Item
from bookshop.services import bill_service


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


def test_seed_is_idempotent(runner, db_session):
    first = runner.invoke(args=["system", "seed"])
    assert first.exit_code == 0
    assert "5 rows created" in first.output

    second = runner.invoke(args=["system", "seed"])
    assert "0 rows created" in second.output
    assert db_session.query(Item).count() == 4
    assert db_session.query(Customer).filter_by(account_number="C000000").count() == 1


def test_reset_db_requires_confirmation(runner, make_item):
    make_item("BK-0001")
    aborted = runner.invoke(args=["system", "reset-db"], input="n\n")
    assert aborted.exit_code != 0

    result = runner.invoke(args=["system", "reset-db", "--yes"])
    assert result.exit_code == 0
    assert "Database reset complete" in result.output


def test_items_list_and_restock(runner, make_item, db_session):
    make_item("BK-0001", name="Madol Doova", stock=3)
    make_item("OLD-1", name="Out of print", active=False)

    listed = runner.invoke(args=["items", "list"])
    assert "Madol Doova" in listed.output
    assert "OLD-1" not in listed.output
    assert "(inactive)" in runner.invoke(args=["items", "list", "--all"]).output

    result = runner.invoke(args=["items", "restock", "BK-0001", "7"])
    assert result.exit_code == 0
    assert "stock is now 10" in result.output

    assert runner.invoke(args=["items", "restock", "BK-0001", "0"]).exit_code == 1
    missing = runner.invoke(args=["items", "restock", "NOPE", "1"])
    assert missing.exit_code == 1
    assert "not found" in missing.output


def test_bills_list_and_recalc(runner, customer, make_item, db_session):
    item = make_item("BK-0001", price="10.00", stock=5)
    bill = bill_service.create_bill(customer.id, [{"item_id": item.id, "quantity": 2, "unit_price": None}])
    bill_number = bill.bill_number

    assert runner.invoke(args=["bills", "list"]).output.count(bill_number) == 1
    assert "No bills found." in runner.invoke(args=["bills", "list", "--status", "PAID"]).output

    result = runner.invoke(args=["bills", "recalc", bill_number])
    assert result.exit_code == 0
    assert f"PASS {bill_number}: total" in result.output

    assert runner.invoke(args=["bills", "recalc", "B999999"]).exit_code == 1
