# backend/bookshop/services/customer_service.py
"""
Customer account service.

Account numbers are unique. When a create request omits one, the next
number from the ACCOUNT sequence is used (e.g. "C000001").

Deleting a customer is a hard delete: the customer's bills and their lines go
with it through the ORM cascade. PENDING bills still hold stock, which is
restored first, the same way bill_service.delete_bill does it.
"""
from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import func, or_

from ..extensions import db
from ..models import Bill, Customer, PaymentStatus
from ..money import ZERO, format_amount
from ..repository import Repository, bills_for_customer
from ..validation import ConflictError
from .bill_service import restore_stock
from .concurrency import run_with_retry
from .document_service import next_account_number

logger = logging.getLogger(__name__)

customers = Repository(Customer)

CUSTOMER_MUTABLE_FIELDS = {"account_number", "name", "address", "telephone_number"}


def apply_customer_patch(c: Customer, patch: dict) -> None:
    for k, v in patch.items():
        if k not in CUSTOMER_MUTABLE_FIELDS:
            continue
        setattr(c, k, v)


def list_customers(
    *,
    search: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """List customers by name; search matches name or account number prefix."""
    filters = []
    if search:
        pattern = f"{search}%"
        filters.append(
            or_(Customer.name.ilike(f"%{search}%"), Customer.account_number.like(pattern))
        )
    result = customers.list(
        filters=filters,
        order_by=[Customer.name.asc(), Customer.id.asc()],
        page=page,
        per_page=per_page,
    )
    result["items"] = [c.to_dict() for c in result["items"]]
    return result


def get_customer(customer_id: int) -> Customer | None:
    return customers.get(customer_id)


def create_customer(*, patch: dict) -> Customer:
    """
    Create a customer from a validated patch.

    Raises:
        ConflictError: If account_number is already taken
    """
    account_number = patch.get("account_number")
    if account_number and customers.exists(account_number=account_number):
        raise ConflictError("Account number already exists.")

    def _op():
        c = Customer()
        apply_customer_patch(c, patch)
        if not account_number:
            c.account_number = next_account_number()

        customers.add(c)
        db.session.commit()
        logger.info("Created customer %s (id=%s)", c.account_number, c.id)
        return c

    return run_with_retry(_op)


def update_customer(*, customer_id: int, patch: dict) -> Customer | None:
    """Returns None if the customer does not exist."""
    c = customers.get(customer_id)
    if not c:
        return None

    if "account_number" in patch and patch["account_number"] != c.account_number:
        existing = (
            customers.query()
            .filter(Customer.account_number == patch["account_number"], Customer.id != c.id)
            .first()
        )
        if existing:
            raise ConflictError("Account number already exists.")

    apply_customer_patch(c, patch)
    db.session.commit()
    return c


def delete_customer(*, customer_id: int) -> bool:
    """
    Delete a customer together with all of its bills and bill lines.

    Stock held by PENDING bills goes back to the items first. Returns False if
    the customer does not exist.
    """
    def _op():
        c = customers.get_for_update(customer_id)
        if not c:
            return False

        pending = [b for b in c.bills if b.payment_status == PaymentStatus.PENDING]
        for bill in pending:
            restore_stock(bill)

        account_number, bill_count = c.account_number, len(c.bills)
        customers.delete(c)
        db.session.commit()
        logger.info(
            "Deleted customer %s and %d bills (%d pending restored to stock)",
            account_number, bill_count, len(pending),
        )
        return True

    return run_with_retry(_op)


def customer_summary(customer_id: int) -> dict | None:
    """
    Billing overview for one account: bill counts and amounts per payment
    status, plus units consumed.
    """
    c = customers.get(customer_id)
    if not c:
        return None

    rows = (
        db.session.query(Bill.payment_status, func.count(Bill.id), func.sum(Bill.total_amount))
        .filter(Bill.customer_id == customer_id)
        .group_by(Bill.payment_status)
        .all()
    )
    by_status = {
        status: {"count": 0, "total_amount": format_amount(ZERO)}
        for status in PaymentStatus.ALL
    }
    for status, count, total in rows:
        by_status[status] = {
            "count": count,
            "total_amount": format_amount(Decimal(total) if total is not None else ZERO),
        }

    return {
        "customer": c.to_dict(),
        "bill_count": len(bills_for_customer(customer_id)),
        "by_status": by_status,
        "units_consumed": format_amount(c.units_consumed),
    }
