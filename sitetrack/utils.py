"""
Utility functions shared across the blueprints:
- request payload access (JSON body, falling back to form data)
- parsing helpers for decimals, ints, dates and enumerated values

Parsing helpers named require_* raise ValidationError (rendered as HTTP 400);
parse_* helpers return None for empty/invalid input.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

from flask import request

from .errors import ValidationError


def get_payload() -> dict:
    """Return the request body as a dict (JSON preferred, form data accepted)."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def parse_decimal(value: Any) -> Decimal | None:
    """Parse decimal from user input (accepts comma or dot)."""
    if value is None or isinstance(value, bool):
        return None
    raw = str(value).strip().replace(",", ".")
    if raw == "":
        return None
    try:
        parsed = Decimal(raw)
    except (InvalidOperation, ValueError):
        return None
    if not parsed.is_finite():
        return None
    return parsed


def parse_optional_int(value: Any) -> int | None:
    """Parse optional int from form/query/JSON."""
    if value is None or isinstance(value, bool):
        return None
    raw = str(value).strip()
    if raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def parse_date(value: Any) -> date | None:
    """Parse an ISO date (YYYY-MM-DD); datetimes are truncated to their date."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = str(value).strip()
    if not raw:
        return None
    try:
        return date.fromisoformat(raw[:10])
    except ValueError:
        return None


def require_text(data: dict, field: str, *, label: str | None = None) -> str:
    value = (data.get(field) or "")
    value = str(value).strip()
    if not value:
        raise ValidationError(f"{label or field} is required.", details={"field": field})
    return value


def optional_text(data: dict, field: str) -> str | None:
    value = data.get(field)
    if value is None:
        return None
    return str(value).strip() or None


def require_positive_decimal(data: dict, field: str, *, label: str | None = None) -> Decimal:
    value = parse_decimal(data.get(field))
    if value is None or value <= 0:
        raise ValidationError(f"{label or field} must be a positive number.", details={"field": field})
    return value


def require_choice(data: dict, field: str, choices: Iterable[str], *, default: str | None = None) -> str:
    value = (str(data.get(field) or "")).strip() or default
    if value not in choices:
        allowed = ", ".join(choices)
        raise ValidationError(f"{field} must be one of: {allowed}.", details={"field": field})
    return value


_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def require_bool(data: dict, field: str) -> bool:
    """Boolean from JSON or form data ("1"/"0", "true"/"false", "yes"/"no", "on"/"off")."""
    value = data.get(field)
    if isinstance(value, bool):
        return value
    raw = str(value if value is not None else "").strip().lower()
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    raise ValidationError(f"{field} must be true or false.", details={"field": field})


def require_date(data: dict, field: str) -> date:
    value = parse_date(data.get(field))
    if value is None:
        raise ValidationError(f"{field} must be a date (YYYY-MM-DD).", details={"field": field})
    return value


def query_choice(name: str, choices: Iterable[str]) -> str | None:
    """Optional enumerated filter from the query string; unknown values are rejected."""
    value = (request.args.get(name) or "").strip()
    if not value or value == "all":
        return None
    if value not in choices:
        raise ValidationError(f"Unknown {name} filter: {value}.", details={"field": name})
    return value


def jsonable(value: Any) -> Any:
    """Decimals become floats (recursively) for JSON responses."""
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, dict):
        return {k: jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [jsonable(v) for v in value]
    return value
