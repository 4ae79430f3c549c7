from __future__ import annotations
import re
from datetime import date, datetime
from decimal import Decimal
from bookshop.time_utils import parse_iso_date, parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Date, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .models.bills import BillItem
from .money import to_decimal


# Sri Lankan numbers: +94 followed by 9 or 10 digits
TELEPHONE_PATTERN = re.compile(r"^\+94[0-9]{9,10}$")


@dataclass(frozen=True)
class Violation:
    field: str
    message: str

    def to_dict(self) -> dict:
        return {"field": self.field, "message": self.message}


class ValidationError(ValueError):
    """400-level input problem. Carries every violation found, not just the first."""

    def __init__(self, violations: list[Violation] | str):
        if isinstance(violations, str):
            violations = [Violation(field="", message=violations)]
        self.violations = list(violations)
        super().__init__("; ".join(
            f"{v.field}: {v.message}" if v.field else v.message for v in self.violations
        ))


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate item code)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set
    - required_on_create: fields required for POST
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = frozenset()


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_numeric(col, value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError([Violation(col.key, "must be a number")])
    try:
        amount = to_decimal(value)
    except (TypeError, ValueError):
        raise ValidationError([Violation(col.key, "must be a number")])
    if not amount.is_finite():
        raise ValidationError([Violation(col.key, "must be a finite number")])

    precision, scale = col.type.precision, col.type.scale
    if precision is not None and scale is not None:
        limit = Decimal(10) ** (precision - scale)
        if abs(amount) >= limit:
            raise ValidationError([Violation(col.key, f"must be less than {limit}")])
    exponent = amount.as_tuple().exponent
    if scale is not None and exponent < 0 and -exponent > scale:
        # Trailing zeros beyond the scale are fine (e.g. "10.500")
        if amount != amount.quantize(Decimal(1).scaleb(-scale)):
            raise ValidationError([Violation(col.key, f"must have at most {scale} decimal places")])
    return amount


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError([Violation(col.key, "must be an integer")])
            if 'e' in stripped.lower():
                raise ValidationError([Violation(col.key, "must be a plain integer (scientific notation not allowed)")])
            if '.' in stripped:
                raise ValidationError([Violation(col.key, "must be an integer (no decimals)")])
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError([Violation(col.key, "must be an integer")])
        if isinstance(value, float):
            raise ValidationError([Violation(col.key, "must be an integer, not a decimal")])
        raise ValidationError([Violation(col.key, "must be an integer")])

    if isinstance(coltype, Numeric):
        return _coerce_numeric(col, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError([Violation(col.key, "must be true or false")])

    # DateTime is checked before Date; both accept ISO-8601 strings
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                dt = None
            if dt is None:
                raise ValidationError([Violation(col.key, "must be an ISO-8601 datetime")])
            return dt
        raise ValidationError([Violation(col.key, "must be a datetime")])

    if isinstance(coltype, Date):
        if isinstance(value, date) and not isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                d = parse_iso_date(value)
            except ValueError:
                d = None
            if d is None:
                raise ValidationError([Violation(col.key, "must be an ISO-8601 date (YYYY-MM-DD)")])
            return d
        raise ValidationError([Violation(col.key, "must be a date")])

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length, Numeric precision)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    Every problem is collected; a single ValidationError lists all of them.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    violations: list[Violation] = []

    if not partial:
        for f in sorted(policy.required_on_create):
            if f not in payload:
                violations.append(Violation(f, "is required"))

    cols = _columns_by_key(model)
    patch: dict = {}

    for k, raw in payload.items():
        if k not in policy.writable_fields:
            violations.append(Violation(k, "field not allowed"))
            continue
        if k not in cols:
            violations.append(Violation(k, "unknown field"))
            continue
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                violations.append(Violation(k, "cannot be null"))
            else:
                patch[k] = None
            continue

        try:
            val = _coerce_value(col, raw)
        except ValidationError as e:
            violations.extend(e.violations)
            continue

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                violations.append(Violation(k, "cannot be blank"))
                continue

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                violations.append(Violation(k, f"exceeds max length {col.type.length}"))
                continue

        patch[k] = val

    raise_for_violations(violations)
    return patch


def raise_for_violations(violations: list[Violation]) -> None:
    if violations:
        raise ValidationError(violations)


def check_item_rules(patch: dict) -> list[Violation]:
    """Rules not captured by column metadata alone."""
    violations = []
    if patch.get("unit_price") is not None and patch["unit_price"] <= 0:
        violations.append(Violation("unit_price", "must be greater than 0"))
    if patch.get("stock_quantity") is not None and patch["stock_quantity"] < 0:
        violations.append(Violation("stock_quantity", "cannot be negative"))
    return violations


def check_customer_rules(patch: dict) -> list[Violation]:
    violations = []
    phone = patch.get("telephone_number")
    if phone is not None and not TELEPHONE_PATTERN.match(phone):
        violations.append(Violation("telephone_number", "invalid Sri Lankan phone number format"))
    if patch.get("units_consumed") is not None and patch["units_consumed"] < 0:
        violations.append(Violation("units_consumed", "cannot be negative"))
    return violations


def check_bill_line_rules(line: Any, index: int | None = None) -> list[Violation]:
    """
    Validate one requested bill line ({"item_id", "quantity", "unit_price"?}).

    Field names are prefixed with lines[i]. when index is given, so a caller can
    validate a whole list and report positions.
    """
    prefix = f"lines[{index}]." if index is not None else ""
    if not isinstance(line, dict):
        return [Violation(prefix.rstrip(".") or "line", "must be an object")]

    violations = []
    item_id = line.get("item_id")
    if not isinstance(item_id, int) or isinstance(item_id, bool) or item_id <= 0:
        violations.append(Violation(f"{prefix}item_id", "must be a positive integer"))

    quantity = line.get("quantity")
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        violations.append(Violation(f"{prefix}quantity", "must be greater than 0"))

    # Same precision and scale as the stored column, so total_price stays exact
    if line.get("unit_price") is not None:
        try:
            price = _coerce_numeric(BillItem.__table__.c.unit_price, line["unit_price"])
        except ValidationError as e:
            violations.extend(Violation(f"{prefix}unit_price", v.message) for v in e.violations)
        else:
            if price <= 0:
                violations.append(Violation(f"{prefix}unit_price", "must be greater than 0"))
    return violations


def validate_bill_lines(lines: Any) -> list[dict]:
    """Validate the line list of a bill-creation request and normalize unit prices."""
    if not isinstance(lines, list) or not lines:
        raise ValidationError([Violation("lines", "at least one line is required")])

    violations: list[Violation] = []
    for i, line in enumerate(lines):
        violations.extend(check_bill_line_rules(line, i))
    raise_for_violations(violations)

    return [
        {
            "item_id": line["item_id"],
            "quantity": line["quantity"],
            "unit_price": to_decimal(line.get("unit_price")),
        }
        for line in lines
    ]


class NotFoundError(LookupError):
    """404-level: the referenced row does not exist."""
