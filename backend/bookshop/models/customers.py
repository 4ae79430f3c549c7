from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..money import ZERO, format_amount, to_decimal
from bookshop.time_utils import to_utc_z


class Customer(db.Model):
    """
    Bookshop account holder.

    OWNERSHIP: a Customer owns its bills. Deleting the customer deletes the
    bills, which in turn delete their line items (delete-orphan cascade on
    both levels).

    units_consumed is the running total of units billed to the account; it is
    kept non-negative.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    account_number = db.Column(db.String(20), nullable=False, unique=True)
    name = db.Column(db.String(100), nullable=False)
    address = db.Column(db.Text, nullable=False)
    telephone_number = db.Column(db.String(20), nullable=False)

    units_consumed = db.Column(db.Numeric(10, 2), nullable=False, default=ZERO)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    bills = db.relationship(
        "Bill",
        back_populates="customer",
        cascade="all, delete-orphan",
        lazy=True,
        order_by="Bill.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __init__(self, **kwargs):
        kwargs.setdefault("units_consumed", ZERO)
        super().__init__(**kwargs)

    def __repr__(self) -> str:
        return f"<Customer id={self.id} account={self.account_number!r}>"

    def record_consumption(self, units) -> None:
        self.units_consumed = to_decimal(self.units_consumed or ZERO) + to_decimal(units)

    def reverse_consumption(self, units) -> None:
        """Take units back off the account (cancelled/refunded bill); floored at zero."""
        remaining = to_decimal(self.units_consumed or ZERO) - to_decimal(units)
        self.units_consumed = remaining if remaining > ZERO else Decimal("0.00")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_number": self.account_number,
            "name": self.name,
            "address": self.address,
            "telephone_number": self.telephone_number,
            "units_consumed": format_amount(self.units_consumed),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
