"""
Bill service - creating bills and moving them through their payment lifecycle

WHY: A bill touches three kinds of rows at once (the bill and its lines, the
billed items' stock, the customer's consumed units). Each operation here does
all of it in one transaction so a failure leaves nothing half-applied.

Payment status transitions:

    PENDING -> PAID | CANCELLED
    PAID    -> REFUNDED
    CANCELLED, REFUNDED: terminal

Entering CANCELLED or REFUNDED puts every line's quantity back into stock and
takes the bill's units off the customer's consumption. Because both states are
terminal, that reversal happens at most once per bill.
"""

from __future__ import annotations

import logging
from datetime import date

from ..extensions import db
from ..models import Bill, BillItem, Customer, Item, PaymentStatus
from ..repository import Repository
from ..validation import NotFoundError, ValidationError
from bookshop.time_utils import today
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_bill_number

logger = logging.getLogger(__name__)

bills = Repository(Bill)
customers = Repository(Customer)

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PAID, PaymentStatus.CANCELLED}),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.CANCELLED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
}

# Statuses whose bills no longer hold stock or count toward consumption
REVERSED_STATUSES = frozenset({PaymentStatus.CANCELLED, PaymentStatus.REFUNDED})


class BillError(Exception):
    """Raised for bill operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def _lock_items(item_ids) -> dict[int, Item]:
    rows = lock_for_update(
        db.session.query(Item).filter(Item.id.in_(sorted(set(item_ids))))
    ).all()
    return {item.id: item for item in rows}


def _lock_bill(bill_id: int) -> Bill:
    bill = bills.get_for_update(bill_id)
    if not bill:
        raise NotFoundError("Bill not found")
    return bill


def _require_pending(bill: Bill, action: str) -> None:
    if bill.payment_status != PaymentStatus.PENDING:
        raise BillError(
            f"Can only {action} PENDING bills",
            details={"bill_number": bill.bill_number, "payment_status": bill.payment_status},
        )


def _check_stock(requested: dict[int, int], items_by_id: dict[int, Item]) -> None:
    """Raise BillError listing every item whose stock cannot cover the request."""
    insufficient = []
    for item_id, qty in requested.items():
        item = items_by_id[item_id]
        if not item.has_sufficient_stock(qty):
            insufficient.append({
                "item_id": item_id,
                "item_code": item.item_code,
                "requested_quantity": qty,
                "stock_quantity": item.stock_quantity,
            })
    if insufficient:
        raise BillError("Insufficient stock to create bill", details={"items": insufficient})


def _refresh_totals(bill: Bill) -> None:
    bill.total_amount = bill.calculate_total_amount()
    bill.units_billed = bill.calculate_total_units()


def restore_stock(bill: Bill) -> None:
    """Return every line's quantity to stock and take the bill's units off the customer."""
    items_by_id = _lock_items(line.item_id for line in bill.items)
    for line in bill.items:
        items_by_id[line.item_id].increase_stock(line.quantity)
    bill.customer.reverse_consumption(bill.units_billed)
    logger.info(
        "Restored stock for %d lines of bill %s", len(bill.items), bill.bill_number,
    )


def create_bill(customer_id: int, lines: list[dict], bill_date: date | None = None) -> Bill:
    """
    Create a PENDING bill and take its quantities out of stock.

    lines: validated dicts {"item_id", "quantity", "unit_price"}; a unit_price
    of None means "use the item's current price". Quantities of repeated items
    are summed for the stock check. If any item falls short, BillError lists
    all of them and nothing is written.
    """
    if not lines:
        raise ValidationError("Cannot create a bill with no lines")

    def _op():
        customer = customers.get_for_update(customer_id)
        if not customer:
            raise NotFoundError("Customer not found")

        items_by_id = _lock_items(line["item_id"] for line in lines)
        missing = sorted({line["item_id"] for line in lines} - set(items_by_id))
        if missing:
            raise NotFoundError(f"Item not found: {', '.join(str(i) for i in missing)}")

        inactive = sorted(i.item_code for i in items_by_id.values() if not i.is_active)
        if inactive:
            raise BillError("Cannot bill inactive items", details={"item_codes": inactive})

        requested: dict[int, int] = {}
        for line in lines:
            requested[line["item_id"]] = requested.get(line["item_id"], 0) + line["quantity"]
        _check_stock(requested, items_by_id)

        bill = Bill(
            bill_number=next_bill_number(),
            customer=customer,
            bill_date=bill_date or today(),
        )
        for line in lines:
            item = items_by_id[line["item_id"]]
            item.reduce_stock(line["quantity"])
            unit_price = line.get("unit_price")
            bill.items.append(BillItem(
                item=item,
                quantity=line["quantity"],
                unit_price=unit_price if unit_price is not None else item.unit_price,
            ))

        _refresh_totals(bill)
        customer.record_consumption(bill.units_billed)

        bills.add(bill)
        db.session.commit()
        logger.info(
            "Created bill %s for customer %s: %d lines, total %s",
            bill.bill_number, customer.account_number, len(bill.items), bill.total_amount,
        )
        return bill

    return run_with_retry(_op)


def add_bill_item(bill_id: int, item_id: int, quantity: int, unit_price=None) -> BillItem:
    """Add a line to a PENDING bill, reducing stock and refreshing the stored totals."""
    def _op():
        bill = _lock_bill(bill_id)
        _require_pending(bill, "add lines to")

        item = _lock_items([item_id]).get(item_id)
        if not item:
            raise NotFoundError("Item not found")
        if not item.is_active:
            raise BillError("Cannot bill inactive items", details={"item_codes": [item.item_code]})
        _check_stock({item_id: quantity}, {item_id: item})

        item.reduce_stock(quantity)
        line = BillItem(
            item=item,
            quantity=quantity,
            unit_price=unit_price if unit_price is not None else item.unit_price,
        )
        bill.items.append(line)

        units_before = bill.units_billed
        _refresh_totals(bill)
        bill.customer.record_consumption(bill.units_billed - units_before)

        db.session.commit()
        return line

    return run_with_retry(_op)


def remove_bill_item(bill_id: int, bill_item_id: int) -> Bill:
    """
    Remove a line from a PENDING bill and return its quantity to stock.

    The last line cannot be removed; cancel the bill instead.
    """
    def _op():
        bill = _lock_bill(bill_id)
        _require_pending(bill, "remove lines from")

        line = next((li for li in bill.items if li.id == bill_item_id), None)
        if line is None:
            raise NotFoundError("Bill item not found")
        if len(bill.items) == 1:
            raise BillError("Cannot remove the last line of a bill; cancel the bill instead")

        _lock_items([line.item_id])[line.item_id].increase_stock(line.quantity)
        bill.items.remove(line)

        units_before = bill.units_billed
        _refresh_totals(bill)
        bill.customer.reverse_consumption(units_before - bill.units_billed)

        db.session.commit()
        return bill

    return run_with_retry(_op)


def recalculate_totals(bill_id: int) -> Bill:
    """Write calculate_total_amount / calculate_total_units back to the stored columns."""
    def _op():
        bill = _lock_bill(bill_id)
        _refresh_totals(bill)
        db.session.commit()
        return bill

    return run_with_retry(_op)


def change_payment_status(bill_id: int, status: str) -> Bill:
    """
    Move a bill to a new payment status.

    Setting the current status again is a no-op. Transitions outside
    ALLOWED_TRANSITIONS raise BillError.
    """
    if status not in PaymentStatus.ALL:
        raise ValidationError(f"payment_status must be one of {', '.join(PaymentStatus.ALL)}")

    def _op():
        bill = _lock_bill(bill_id)
        current = bill.payment_status
        if status == current:
            return bill

        allowed = ALLOWED_TRANSITIONS[current]
        if status not in allowed:
            raise BillError(
                f"Cannot change payment status from {current} to {status}",
                details={"from": current, "to": status, "allowed": sorted(allowed)},
            )

        if status in REVERSED_STATUSES:
            restore_stock(bill)

        bill.payment_status = status
        db.session.commit()
        logger.info("Bill %s payment status %s -> %s", bill.bill_number, current, status)
        return bill

    return run_with_retry(_op)


def delete_bill(bill_id: int) -> bool:
    """
    Delete a bill and its lines.

    PAID bills must be refunded first. A PENDING bill still holds stock, which
    is restored before deletion. Returns False if the bill does not exist.
    """
    def _op():
        bill = bills.get_for_update(bill_id)
        if not bill:
            return False

        if bill.payment_status == PaymentStatus.PAID:
            raise BillError("Cannot delete a PAID bill; refund it first")
        if bill.payment_status == PaymentStatus.PENDING:
            restore_stock(bill)

        bill_number = bill.bill_number
        bills.delete(bill)
        db.session.commit()
        logger.info("Deleted bill %s", bill_number)
        return True

    return run_with_retry(_op)


def get_bill(bill_id: int) -> Bill | None:
    return bills.get(bill_id)


def get_bill_by_number(bill_number: str) -> Bill | None:
    return bills.find_one(bill_number=bill_number)


def list_bills(
    *,
    customer_id: int | None = None,
    status: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """List bills newest first, optionally filtered by customer and payment status."""
    filters = []
    if customer_id is not None:
        filters.append(Bill.customer_id == customer_id)
    if status is not None:
        if status not in PaymentStatus.ALL:
            raise ValidationError(f"status must be one of {', '.join(PaymentStatus.ALL)}")
        filters.append(Bill.payment_status == status)

    result = bills.list(
        filters=filters,
        order_by=[Bill.bill_date.desc(), Bill.id.desc()],
        page=page,
        per_page=per_page,
    )
    result["items"] = [b.to_dict() for b in result["items"]]
    return result
