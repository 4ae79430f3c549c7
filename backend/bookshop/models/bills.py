from __future__ import annotations

from decimal import Decimal

from sqlalchemy.orm import validates

from ..extensions import db
from ..money import ZERO, format_amount, to_decimal
from bookshop.time_utils import to_iso_date, to_utc_z


class PaymentStatus:
    """Closed set of bill payment states. PENDING is the initial state."""
    PENDING = "PENDING"
    PAID = "PAID"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"

    ALL = (PENDING, PAID, CANCELLED, REFUNDED)


class Bill(db.Model):
    """
    Billing header for one customer.

    STORED vs DERIVED TOTALS: total_amount and units_billed are stored columns.
    calculate_total_amount() / calculate_total_units() derive the same figures
    from the in-memory line items without writing them back; bill_service
    decides when the stored values are refreshed.

    OWNERSHIP: a Bill owns its BillItems (delete-orphan cascade). The customer
    relationship is a lookup only.
    """
    __tablename__ = "bills"
    __table_args__ = (
        db.Index("ix_bills_customer_status", "customer_id", "payment_status"),
        db.Index("ix_bills_bill_date", "bill_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable bill number (e.g., "B000123")
    bill_number = db.Column(db.String(20), nullable=False, unique=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    bill_date = db.Column(db.Date, nullable=False)

    units_billed = db.Column(db.Numeric(10, 2), nullable=False)
    total_amount = db.Column(db.Numeric(10, 2), nullable=False)

    payment_status = db.Column(db.String(20), nullable=False, default=PaymentStatus.PENDING, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", back_populates="bills")
    items = db.relationship(
        "BillItem",
        back_populates="bill",
        cascade="all, delete-orphan",
        lazy=True,
        order_by="BillItem.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __init__(self, **kwargs):
        kwargs.setdefault("payment_status", PaymentStatus.PENDING)
        super().__init__(**kwargs)

    def __repr__(self) -> str:
        return (
            f"<Bill id={self.id} number={self.bill_number!r} "
            f"total={self.total_amount} status={self.payment_status}>"
        )

    @validates("payment_status")
    def _validate_payment_status(self, key, value):
        if value not in PaymentStatus.ALL:
            raise ValueError(f"Invalid payment status: {value!r}")
        return value

    @validates("created_at")
    def _validate_created_at(self, key, value):
        if self.created_at is not None and value != self.created_at:
            raise ValueError("created_at cannot be changed once set")
        return value

    def calculate_total_amount(self) -> Decimal:
        if not self.items:
            return ZERO
        return sum((line.total_price for line in self.items), ZERO)

    def calculate_total_units(self) -> Decimal:
        if not self.items:
            return ZERO
        return sum((Decimal(line.quantity) for line in self.items), ZERO)

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "bill_number": self.bill_number,
            "customer_id": self.customer_id,
            "bill_date": to_iso_date(self.bill_date),
            "units_billed": format_amount(self.units_billed),
            "total_amount": format_amount(self.total_amount),
            "payment_status": self.payment_status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [line.to_dict() for line in self.items]
        return data


class BillItem(db.Model):
    """
    One line on a bill.

    unit_price is captured when the line is created and does not follow later
    changes to Item.unit_price. total_price is kept equal to
    unit_price * quantity: assigning either field recomputes it as soon as the
    other one is present.
    """
    __tablename__ = "bill_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    bill_id = db.Column(db.Integer, db.ForeignKey("bills.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)
    total_price = db.Column(db.Numeric(10, 2), nullable=False)

    bill = db.relationship("Bill", back_populates="items")
    item = db.relationship("Item")

    def __repr__(self) -> str:
        return (
            f"<BillItem id={self.id} item_id={self.item_id} qty={self.quantity} "
            f"unit_price={self.unit_price} total={self.total_price}>"
        )

    @validates("quantity")
    def _recalculate_on_quantity(self, key, quantity):
        if quantity is not None and self.unit_price is not None:
            self.total_price = self.unit_price * quantity
        return quantity

    @validates("unit_price")
    def _recalculate_on_unit_price(self, key, unit_price):
        unit_price = to_decimal(unit_price)
        if unit_price is not None and self.quantity is not None:
            self.total_price = unit_price * self.quantity
        return unit_price

    def calculate_total_price(self) -> None:
        if self.quantity is not None and self.unit_price is not None:
            self.total_price = self.unit_price * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bill_id": self.bill_id,
            "item_id": self.item_id,
            "quantity": self.quantity,
            "unit_price": format_amount(self.unit_price),
            "total_price": format_amount(self.total_price),
        }
