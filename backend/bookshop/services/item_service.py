# backend/bookshop/services/item_service.py
"""
Item (inventory) service.

Stock only moves through Item.increase_stock() / Item.reduce_stock(); this
module wraps those calls in locked, retried transactions. Items are never
hard-deleted, only deactivated.
"""
from __future__ import annotations

import logging

from ..extensions import db
from ..models import Item
from ..repository import Repository, bill_items_for_item
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import run_with_retry

logger = logging.getLogger(__name__)

items = Repository(Item)

ITEM_MUTABLE_FIELDS = {"item_code", "item_name", "description", "unit_price", "category", "is_active"}


def apply_item_patch(item: Item, patch: dict) -> None:
    for k, v in patch.items():
        if k not in ITEM_MUTABLE_FIELDS:
            continue
        setattr(item, k, v)


def list_items(
    *,
    category: str | None = None,
    include_inactive: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    List items ordered by name, optionally filtered and paginated.

    Returns a dict with 'items' (serialized), 'count' and, when page is
    given, 'pagination'.
    """
    filters = []
    if category is not None:
        filters.append(Item.category == category)
    if not include_inactive:
        filters.append(Item.is_active.is_(True))

    result = items.list(
        filters=filters,
        order_by=[Item.item_name.asc(), Item.id.asc()],
        page=page,
        per_page=per_page,
    )
    result["items"] = [i.to_dict() for i in result["items"]]
    return result


def get_item(item_id: int) -> Item | None:
    return items.get(item_id)


def get_item_by_code(item_code: str) -> Item | None:
    return items.find_one(item_code=item_code)


def create_item(*, patch: dict) -> Item:
    """
    Create an item from a validated patch.

    Raises:
        ConflictError: If item_code is already taken
    """
    code = patch.get("item_code")
    if code is None:
        raise ValidationError("item_code is required")
    if items.exists(item_code=code):
        raise ConflictError("Item code already exists.")

    item = Item(stock_quantity=patch.get("stock_quantity") or 0)
    apply_item_patch(item, patch)
    items.add(item)
    db.session.commit()

    logger.info("Created item %s (id=%s, stock=%s)", item.item_code, item.id, item.stock_quantity)
    return item


def update_item(*, item_id: int, patch: dict) -> Item | None:
    """
    Update descriptive fields and price. Stock is not patchable here; use
    restock_item / adjust_stock.

    Returns None if the item does not exist.
    """
    item = items.get(item_id)
    if not item:
        return None

    if "item_code" in patch and patch["item_code"] != item.item_code:
        existing = (
            items.query()
            .filter(Item.item_code == patch["item_code"], Item.id != item.id)
            .first()
        )
        if existing:
            raise ConflictError("Item code already exists.")

    apply_item_patch(item, patch)
    db.session.commit()
    return item


def deactivate_item(*, item_id: int) -> bool:
    """
    Soft-delete an item. Bill lines keep referring to it.

    Returns False if the item does not exist.
    """
    item = items.get(item_id)
    if not item:
        return False

    if item.is_active:
        item.is_active = False
        logger.info(
            "Deactivated item %s (%d bill lines reference it)",
            item.item_code, len(bill_items_for_item(item.id)),
        )
    db.session.commit()
    return True


def restock_item(*, item_id: int, quantity: int) -> Item:
    """Add received stock to an item."""
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer")

    def _op():
        item = items.get_for_update(item_id)
        if not item:
            raise NotFoundError("Item not found")
        item.increase_stock(quantity)
        db.session.commit()
        logger.info("Restocked item %s by %d (now %d)", item.item_code, quantity, item.stock_quantity)
        return item

    return run_with_retry(_op)


def adjust_stock(*, item_id: int, delta: int) -> Item:
    """
    Correct an item's stock by a signed amount (shrinkage, recount).

    A negative delta goes through Item.reduce_stock and therefore fails with
    InsufficientStockError rather than driving stock below zero.
    """
    if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
        raise ValidationError("delta must be a non-zero integer")

    def _op():
        item = items.get_for_update(item_id)
        if not item:
            raise NotFoundError("Item not found")
        if delta > 0:
            item.increase_stock(delta)
        else:
            item.reduce_stock(-delta)
        db.session.commit()
        logger.info("Adjusted item %s stock by %+d (now %d)", item.item_code, delta, item.stock_quantity)
        return item

    return run_with_retry(_op)
