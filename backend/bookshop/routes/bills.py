# Overview: Flask API routes for bills; parses input and returns JSON responses.

# backend/bookshop/routes/bills.py
"""Bill API routes"""

from flask import Blueprint, current_app, jsonify, request

from ..services import bill_service
from ..services.bill_service import BillError
from ..time_utils import parse_iso_date
from ..validation import (
    NotFoundError,
    ValidationError,
    Violation,
    check_bill_line_rules,
    raise_for_violations,
    validate_bill_lines,
)

bills_bp = Blueprint("bills", __name__, url_prefix="/api/bills")


def _validation_error(e: ValidationError):
    return jsonify({"error": "Validation failed", "violations": [v.to_dict() for v in e.violations]}), 400


@bills_bp.post("")
def create_bill_route():
    """
    Create a bill and reduce stock for its lines.

    Body:
    {
        "customer_id": int,
        "bill_date": "YYYY-MM-DD" (optional, defaults to today),
        "lines": [{"item_id": int, "quantity": int, "unit_price": "12.50" (optional)}]
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        customer_id = data.get("customer_id")

        violations = []
        if not isinstance(customer_id, int) or isinstance(customer_id, bool):
            violations.append(Violation("customer_id", "is required"))
        bill_date = None
        try:
            bill_date = parse_iso_date(data.get("bill_date"))
        except (AttributeError, ValueError):
            violations.append(Violation("bill_date", "must be an ISO-8601 date (YYYY-MM-DD)"))
        raise_for_violations(violations)

        lines = validate_bill_lines(data.get("lines"))
        bill = bill_service.create_bill(customer_id, lines, bill_date=bill_date)

        return jsonify({"bill": bill.to_dict(include_items=True)}), 201

    except ValidationError as e:
        return _validation_error(e)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except BillError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to create bill")
        return jsonify({"error": "Internal server error"}), 500


@bills_bp.get("")
def list_bills_route():
    """
    Query params:
    - customer_id: int (optional)
    - status: PENDING | PAID | CANCELLED | REFUNDED (optional)
    - page / per_page: int (optional)
    """
    try:
        return jsonify(bill_service.list_bills(
            customer_id=request.args.get("customer_id", type=int),
            status=request.args.get("status"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        ))
    except ValidationError as e:
        return _validation_error(e)


@bills_bp.get("/<int:bill_id>")
def get_bill_route(bill_id: int):
    bill = bill_service.get_bill(bill_id)
    if not bill:
        return jsonify({"error": "Bill not found"}), 404
    return jsonify({"bill": bill.to_dict(include_items=True)}), 200


@bills_bp.get("/by-number/<bill_number>")
def get_bill_by_number_route(bill_number: str):
    bill = bill_service.get_bill_by_number(bill_number)
    if not bill:
        return jsonify({"error": "Bill not found"}), 404
    return jsonify({"bill": bill.to_dict(include_items=True)}), 200


@bills_bp.post("/<int:bill_id>/items")
def add_bill_item_route(bill_id: int):
    """Add a line to a PENDING bill. Body: {"item_id", "quantity", "unit_price"?}"""
    try:
        data = request.get_json(silent=True) or {}
        raise_for_violations(check_bill_line_rules(data))
        line = validate_bill_lines([data])[0]

        bill_item = bill_service.add_bill_item(
            bill_id, line["item_id"], line["quantity"], unit_price=line["unit_price"],
        )
        return jsonify({"item": bill_item.to_dict(), "bill": bill_item.bill.to_dict()}), 201

    except ValidationError as e:
        return _validation_error(e)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except BillError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to add bill item")
        return jsonify({"error": "Internal server error"}), 500


@bills_bp.delete("/<int:bill_id>/items/<int:bill_item_id>")
def remove_bill_item_route(bill_id: int, bill_item_id: int):
    try:
        bill = bill_service.remove_bill_item(bill_id, bill_item_id)
        return jsonify({"bill": bill.to_dict(include_items=True)}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except BillError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to remove bill item")
        return jsonify({"error": "Internal server error"}), 500


@bills_bp.post("/<int:bill_id>/recalculate")
def recalculate_route(bill_id: int):
    """Refresh the stored totals from the bill's lines."""
    try:
        bill = bill_service.recalculate_totals(bill_id)
        return jsonify({"bill": bill.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to recalculate bill totals")
        return jsonify({"error": "Internal server error"}), 500


@bills_bp.post("/<int:bill_id>/status")
def change_status_route(bill_id: int):
    """
    Change payment status. Body: {"payment_status": "PAID"}

    Cancelling or refunding restores stock for every line.
    """
    try:
        data = request.get_json(silent=True) or {}
        status = data.get("payment_status")
        if not status:
            return jsonify({"error": "payment_status required"}), 400

        bill = bill_service.change_payment_status(bill_id, status)
        return jsonify({"bill": bill.to_dict()}), 200

    except ValidationError as e:
        return _validation_error(e)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except BillError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to change payment status")
        return jsonify({"error": "Internal server error"}), 500


@bills_bp.delete("/<int:bill_id>")
def delete_bill_route(bill_id: int):
    try:
        if not bill_service.delete_bill(bill_id):
            return jsonify({"error": "Bill not found"}), 404
        return jsonify({"ok": True}), 200
    except BillError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to delete bill")
        return jsonify({"error": "Internal server error"}), 500
