"""Item and customer services: uniqueness, stock movements, cascade delete."""

import unittest
from decimal import Decimal

import pytest

from bookshop import create_app
from bookshop.config import TestConfig
from bookshop.extensions import db
from bookshop.models import Bill, BillItem, Customer, InsufficientStockError, Item, PaymentStatus
from bookshop.repository import bill_items_for_item, bills_for_customer
from bookshop.services import bill_service, customer_service, item_service
from bookshop.validation import ConflictError, NotFoundError, ValidationError


class TestItemService:
    def test_create_and_duplicate_code(self, db_session):
        item = item_service.create_item(patch={
            "item_code": "BK-9",
            "item_name": "Jathaka Katha",
            "unit_price": Decimal("650.00"),
            "stock_quantity": 12,
        })
        assert item.id is not None
        assert item.stock_quantity == 12
        assert item.is_active is True

        with pytest.raises(ConflictError):
            item_service.create_item(patch={"item_code": "BK-9", "item_name": "Other", "unit_price": Decimal("1")})

    def test_update_rejects_code_taken_by_other_item(self, make_item):
        make_item("BK-1")
        second = make_item("BK-2")
        with pytest.raises(ConflictError):
            item_service.update_item(item_id=second.id, patch={"item_code": "BK-1"})

    def test_update_ignores_stock(self, make_item):
        item = make_item("BK-1", stock=3)
        updated = item_service.update_item(item_id=item.id, patch={"unit_price": Decimal("11.00"), "stock_quantity": 99})
        assert updated.unit_price == Decimal("11.00")
        assert updated.stock_quantity == 3

    def test_update_missing(self, db_session):
        assert item_service.update_item(item_id=999, patch={}) is None

    def test_restock(self, make_item):
        item = make_item("BK-1", stock=2)
        assert item_service.restock_item(item_id=item.id, quantity=8).stock_quantity == 10

    @pytest.mark.parametrize("quantity", [0, -1, None, True])
    def test_restock_requires_positive_quantity(self, make_item, quantity):
        item = make_item("BK-1")
        with pytest.raises(ValidationError):
            item_service.restock_item(item_id=item.id, quantity=quantity)

    def test_restock_missing_item(self, db_session):
        with pytest.raises(NotFoundError):
            item_service.restock_item(item_id=404, quantity=1)

    def test_adjust_stock_guards_negative(self, make_item):
        item = make_item("BK-1", stock=5)
        assert item_service.adjust_stock(item_id=item.id, delta=-5).stock_quantity == 0
        with pytest.raises(InsufficientStockError):
            item_service.adjust_stock(item_id=item.id, delta=-1)
        db.session.rollback()
        assert db.session.get(Item, item.id).stock_quantity == 0
        assert item_service.adjust_stock(item_id=item.id, delta=2).stock_quantity == 2

    def test_deactivate_is_soft(self, make_item, customer):
        item = make_item("BK-1")
        bill_service.create_bill(customer.id, [{"item_id": item.id, "quantity": 1, "unit_price": None}])

        assert item_service.deactivate_item(item_id=item.id) is True
        kept = db.session.get(Item, item.id)
        assert kept is not None
        assert kept.is_active is False
        assert len(bill_items_for_item(item.id)) == 1

        assert item_service.list_items()["count"] == 0
        assert item_service.list_items(include_inactive=True)["count"] == 1

    def test_list_items_by_category_and_page(self, make_item):
        make_item("BK-1", name="B", category="Fiction")
        make_item("BK-2", name="A", category="Fiction")
        make_item("ST-1", name="C", category="Stationery")

        fiction = item_service.list_items(category="Fiction")
        assert [i["item_code"] for i in fiction["items"]] == ["BK-2", "BK-1"]

        page = item_service.list_items(page=2, per_page=2)
        assert page["count"] == 1
        assert page["pagination"]["has_prev"] is True
        assert page["pagination"]["total_pages"] == 2


class TestCustomerService:
    PATCH = {"name": "Sunil Silva", "address": "Matara", "telephone_number": "+94412223344"}

    def test_account_number_allocated_when_missing(self, db_session):
        first = customer_service.create_customer(patch=dict(self.PATCH))
        second = customer_service.create_customer(patch=dict(self.PATCH))
        assert (first.account_number, second.account_number) == ("C000001", "C000002")
        assert first.units_consumed == Decimal("0")

    def test_duplicate_account_number(self, customer):
        with pytest.raises(ConflictError):
            customer_service.create_customer(patch={**self.PATCH, "account_number": customer.account_number})

    def test_update(self, make_customer):
        make_customer("ACC-1")
        other = make_customer("ACC-2")
        with pytest.raises(ConflictError):
            customer_service.update_customer(customer_id=other.id, patch={"account_number": "ACC-1"})
        db.session.rollback()
        updated = customer_service.update_customer(customer_id=other.id, patch={"address": "Galle"})
        assert updated.address == "Galle"

    def test_delete_cascades_bills_and_lines(self, customer, make_item):
        item = make_item("BK-1", stock=5)
        bill = bill_service.create_bill(customer.id, [{"item_id": item.id, "quantity": 2, "unit_price": None}])
        bill_id, line_id, customer_id = bill.id, bill.items[0].id, customer.id

        assert customer_service.delete_customer(customer_id=customer_id) is True
        assert db.session.get(Customer, customer_id) is None
        assert db.session.get(Bill, bill_id) is None
        assert db.session.get(BillItem, line_id) is None
        assert bills_for_customer(customer_id) == []
        assert db.session.get(Item, item.id).stock_quantity == 5

    def test_delete_restores_only_pending_bills(self, customer, make_item):
        item = make_item("BK-1", stock=5)
        pending = bill_service.create_bill(customer.id, [{"item_id": item.id, "quantity": 1, "unit_price": None}])
        paid = bill_service.create_bill(customer.id, [{"item_id": item.id, "quantity": 2, "unit_price": None}])
        bill_service.change_payment_status(paid.id, PaymentStatus.PAID)
        assert pending.payment_status == PaymentStatus.PENDING

        customer_service.delete_customer(customer_id=customer.id)
        # Sold stock stays sold
        assert db.session.get(Item, item.id).stock_quantity == 3

    def test_delete_missing(self, db_session):
        assert customer_service.delete_customer(customer_id=77) is False

    def test_summary(self, customer, make_item):
        item = make_item("BK-1", price="100.00", stock=10)
        line = {"item_id": item.id, "quantity": 2, "unit_price": None}
        paid = bill_service.create_bill(customer.id, [line])
        bill_service.change_payment_status(paid.id, PaymentStatus.PAID)
        bill_service.create_bill(customer.id, [line])

        summary = customer_service.customer_summary(customer.id)
        assert summary["bill_count"] == 2
        assert summary["by_status"][PaymentStatus.PAID] == {"count": 1, "total_amount": "200.00"}
        assert summary["by_status"][PaymentStatus.PENDING]["count"] == 1
        assert summary["by_status"][PaymentStatus.REFUNDED] == {"count": 0, "total_amount": "0.00"}
        assert summary["units_consumed"] == "4.00"

    def test_search(self, make_customer):
        make_customer("ACC-1", name="Nimal Perera")
        make_customer("XYZ-2", name="Kamala Fernando")
        assert customer_service.list_customers(search="perera")["count"] == 1
        assert customer_service.list_customers(search="XYZ")["count"] == 1


class DocumentNumberTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = create_app(TestConfig)
        cls.app.config["BILL_NUMBER_PREFIX"] = "INV"
        cls.ctx = cls.app.app_context()
        cls.ctx.push()
        db.create_all()

    @classmethod
    def tearDownClass(cls):
        db.session.remove()
        db.drop_all()
        cls.ctx.pop()

    def test_prefix_comes_from_config(self):
        from bookshop.services.document_service import next_bill_number, next_document_number

        self.assertEqual(next_bill_number(), "INV000001")
        self.assertEqual(next_bill_number(), "INV000002")
        self.assertEqual(next_document_number(document_type="OTHER", prefix="X", pad=3), "X001")
        db.session.rollback()
