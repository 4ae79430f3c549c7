from __future__ import annotations

from ..extensions import db
from ..money import format_amount
from bookshop.time_utils import to_utc_z


class InsufficientStockError(ValueError):
    """Raised when a stock reduction would take stock_quantity below zero."""


class Item(db.Model):
    """
    Inventory record for a book or other product.

    STOCK INVARIANT: stock_quantity is never negative. reduce_stock() is the only
    guarded way down; increase_stock() is used for restocking and for reversing
    cancelled or refunded bills.

    LIFECYCLE: items are never hard-deleted. Deactivation flips is_active so that
    historical bill lines keep a valid item_id.

    CONCURRENCY: version_id is the optimistic-locking counter. Two billing
    operations that both read the same stock and write it back will not both
    commit; the loser gets StaleDataError and is retried by run_with_retry.
    """
    __tablename__ = "items"
    __table_args__ = (
        db.Index("ix_items_category_active", "category", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    item_code = db.Column(db.String(20), nullable=False, unique=True)
    item_name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)

    unit_price = db.Column(db.Numeric(10, 2), nullable=False)
    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    category = db.Column(db.String(50), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __init__(self, **kwargs):
        kwargs.setdefault("stock_quantity", 0)
        kwargs.setdefault("is_active", True)
        super().__init__(**kwargs)

    def __repr__(self) -> str:
        return f"<Item id={self.id} code={self.item_code!r} stock={self.stock_quantity}>"

    def has_sufficient_stock(self, requested_quantity: int) -> bool:
        return self.stock_quantity >= requested_quantity

    def reduce_stock(self, quantity: int) -> None:
        if quantity > self.stock_quantity:
            raise InsufficientStockError("Insufficient stock available")
        self.stock_quantity -= quantity

    def increase_stock(self, quantity: int) -> None:
        self.stock_quantity += quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_code": self.item_code,
            "item_name": self.item_name,
            "description": self.description,
            "unit_price": format_amount(self.unit_price),
            "stock_quantity": self.stock_quantity,
            "category": self.category,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
