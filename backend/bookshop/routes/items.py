# Overview: Flask API routes for inventory items; parses input and returns JSON responses.

# backend/bookshop/routes/items.py
"""
Item (inventory) routes.

Items are soft-deleted: DELETE deactivates. Stock changes go through the
/restock and /adjust endpoints, never through PUT.
"""
from flask import Blueprint, current_app, request

from ..models import InsufficientStockError, Item
from ..services import item_service
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    check_item_rules,
    raise_for_violations,
    validate_payload,
)

ITEM_CREATE_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"item_code", "item_name", "description", "unit_price", "stock_quantity", "category"}),
    required_on_create=frozenset({"item_code", "item_name", "unit_price"}),
)

ITEM_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"item_code", "item_name", "description", "unit_price", "category", "is_active"}),
)

items_bp = Blueprint("items", __name__, url_prefix="/api/items")


def _validation_error(e: ValidationError):
    return {"error": "Validation failed", "violations": [v.to_dict() for v in e.violations]}, 400


@items_bp.get("")
def list_items():
    """
    List items.

    Query params:
    - category: str (optional)
    - include_inactive: "true" to include deactivated items
    - page / per_page: int (optional) pagination
    """
    return item_service.list_items(
        category=request.args.get("category"),
        include_inactive=request.args.get("include_inactive", "false").lower() == "true",
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@items_bp.get("/<int:item_id>")
def get_item(item_id: int):
    item = item_service.get_item(item_id)
    if not item:
        return {"error": "Item not found"}, 404
    return item.to_dict()


@items_bp.post("")
def create_item_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Item, payload=payload, policy=ITEM_CREATE_POLICY, partial=False)
        raise_for_violations(check_item_rules(patch))
    except ValidationError as e:
        return _validation_error(e)

    try:
        item = item_service.create_item(patch=patch)
    except ConflictError as e:
        return {"error": str(e)}, 409

    return item.to_dict(), 201


@items_bp.put("/<int:item_id>")
def update_item_route(item_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Item, payload=payload, policy=ITEM_UPDATE_POLICY, partial=True)
        raise_for_violations(check_item_rules(patch))
    except ValidationError as e:
        return _validation_error(e)

    try:
        item = item_service.update_item(item_id=item_id, patch=patch)
    except ConflictError as e:
        return {"error": str(e)}, 409

    if not item:
        return {"error": "Item not found"}, 404
    return item.to_dict(), 200


@items_bp.delete("/<int:item_id>")
def deactivate_item_route(item_id: int):
    if not item_service.deactivate_item(item_id=item_id):
        return {"error": "Item not found"}, 404
    return {"ok": True}, 200


@items_bp.post("/<int:item_id>/restock")
def restock_item_route(item_id: int):
    """Add received stock. Body: {"quantity": int > 0}"""
    data = request.get_json(silent=True) or {}
    try:
        item = item_service.restock_item(item_id=item_id, quantity=data.get("quantity"))
        return item.to_dict(), 200
    except ValidationError as e:
        return _validation_error(e)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to restock item")
        return {"error": "Internal server error"}, 500


@items_bp.post("/<int:item_id>/adjust")
def adjust_stock_route(item_id: int):
    """Signed stock correction. Body: {"delta": non-zero int}"""
    data = request.get_json(silent=True) or {}
    try:
        item = item_service.adjust_stock(item_id=item_id, delta=data.get("delta"))
        return item.to_dict(), 200
    except ValidationError as e:
        return _validation_error(e)
    except InsufficientStockError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return {"error": "Internal server error"}, 500
