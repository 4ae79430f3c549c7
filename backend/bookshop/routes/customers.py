# Overview: Flask API routes for customer accounts; parses input and returns JSON responses.

from flask import Blueprint, request

from ..models import Customer
from ..services import bill_service, customer_service
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    ValidationError,
    check_customer_rules,
    raise_for_violations,
    validate_payload,
)

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"account_number", "name", "address", "telephone_number"}),
    required_on_create=frozenset({"name", "address", "telephone_number"}),
)

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


def _validation_error(e: ValidationError):
    return {"error": "Validation failed", "violations": [v.to_dict() for v in e.violations]}, 400


@customers_bp.get("")
def list_customers():
    """
    List customers.

    Query params:
    - q: str (optional) - name substring or account number prefix
    - page / per_page: int (optional) pagination
    """
    return customer_service.list_customers(
        search=request.args.get("q"),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@customers_bp.get("/<int:customer_id>")
def get_customer(customer_id: int):
    c = customer_service.get_customer(customer_id)
    if not c:
        return {"error": "Customer not found"}, 404
    return c.to_dict()


@customers_bp.get("/<int:customer_id>/summary")
def customer_summary(customer_id: int):
    summary = customer_service.customer_summary(customer_id)
    if summary is None:
        return {"error": "Customer not found"}, 404
    return summary


@customers_bp.get("/<int:customer_id>/bills")
def customer_bills(customer_id: int):
    if not customer_service.get_customer(customer_id):
        return {"error": "Customer not found"}, 404
    return bill_service.list_bills(
        customer_id=customer_id,
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@customers_bp.post("")
def create_customer_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
        raise_for_violations(check_customer_rules(patch))
    except ValidationError as e:
        return _validation_error(e)

    try:
        c = customer_service.create_customer(patch=patch)
    except ConflictError as e:
        return {"error": str(e)}, 409

    return c.to_dict(), 201


@customers_bp.put("/<int:customer_id>")
def update_customer_route(customer_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
        raise_for_violations(check_customer_rules(patch))
    except ValidationError as e:
        return _validation_error(e)

    try:
        c = customer_service.update_customer(customer_id=customer_id, patch=patch)
    except ConflictError as e:
        return {"error": str(e)}, 409

    if not c:
        return {"error": "Customer not found"}, 404
    return c.to_dict(), 200


@customers_bp.delete("/<int:customer_id>")
def delete_customer_route(customer_id: int):
    """Delete a customer and, by cascade, all of its bills. PENDING bills return their stock first."""
    if not customer_service.delete_customer(customer_id=customer_id):
        return {"error": "Customer not found"}, 404
    return {"ok": True}, 200
