# Overview: Explicit storage interface over the SQLAlchemy session.
"""
Repositories keep identity assignment, lookups and cascade deletes out of the
entity classes. Entities hold data and arithmetic; a Repository knows how to
find, add and remove them.

Cascade rules live on the owning relationships (Customer.bills, Bill.items),
so Repository.delete() of a Customer removes its bills and their line items
in the same flush.

Nothing here commits. Services own the transaction boundary.
"""
from __future__ import annotations

from typing import Any, Generic, TypeVar

from flask import current_app

from .extensions import db
from .models import Bill, BillItem
from .services.concurrency import lock_for_update

M = TypeVar("M")


class Repository(Generic[M]):
    def __init__(self, model: type[M]):
        self.model = model

    def query(self):
        return db.session.query(self.model)

    def get(self, obj_id: int) -> M | None:
        return db.session.get(self.model, obj_id)

    def get_for_update(self, obj_id: int) -> M | None:
        """Load a row with SELECT ... FOR UPDATE (ignored on SQLite)."""
        return lock_for_update(self.query().filter_by(id=obj_id)).first()

    def find_one(self, **filters: Any) -> M | None:
        return self.query().filter_by(**filters).first()

    def exists(self, **filters: Any) -> bool:
        return db.session.query(self.query().filter_by(**filters).exists()).scalar()

    def list(
        self,
        *,
        filters: list | None = None,
        order_by: list | None = None,
        page: int | None = None,
        per_page: int | None = None,
    ) -> dict:
        """
        List rows, optionally paginated.

        Returns {"items": [...models...], "count": n} plus "pagination" metadata
        when page is given. per_page defaults to DEFAULT_PAGE_SIZE and is capped
        at MAX_PAGE_SIZE.
        """
        base_query = self.query()
        for criterion in filters or []:
            base_query = base_query.filter(criterion)
        base_query = base_query.order_by(*(order_by or [self.model.id.asc()]))

        if page is None:
            rows = base_query.all()
            return {"items": rows, "count": len(rows)}

        per_page = min(
            per_page or current_app.config["DEFAULT_PAGE_SIZE"],
            current_app.config["MAX_PAGE_SIZE"],
        )
        page = max(page, 1)

        total = base_query.count()
        total_pages = (total + per_page - 1) // per_page if total > 0 else 1
        rows = base_query.offset((page - 1) * per_page).limit(per_page).all()

        return {
            "items": rows,
            "count": len(rows),
            "pagination": {
                "page": page,
                "per_page": per_page,
                "total": total,
                "total_pages": total_pages,
                "has_next": page < total_pages,
                "has_prev": page > 1,
            },
        }

    def add(self, obj: M) -> M:
        """Stage obj and flush so that its surrogate id is assigned."""
        db.session.add(obj)
        db.session.flush()
        return obj

    def delete(self, obj: M) -> None:
        db.session.delete(obj)
        db.session.flush()


def bills_for_customer(customer_id: int) -> list:
    return (
        db.session.query(Bill)
        .filter_by(customer_id=customer_id)
        .order_by(Bill.id.asc())
        .all()
    )


def bill_items_for_item(item_id: int) -> list:
    return (
        db.session.query(BillItem)
        .filter_by(item_id=item_id)
        .order_by(BillItem.id.asc())
        .all()
    )
