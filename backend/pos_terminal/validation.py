from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any


class ValidationError(ValueError):
    """400-level input problem."""


_NON_DIGITS = re.compile(r"\D")

# Upper bound for any money amount typed at the till (COP)
MAX_AMOUNT = Decimal("999999999999")


def parse_amount(raw: Any, field: str = "amount") -> Decimal:
    """
    Parse a money amount typed by the operator.

    Strings are entered with thousands separators ("45.000", "$ 45,000"), so
    every non-digit character is stripped before arithmetic. Empty input is 0.
    Numbers coming from JSON are taken as-is but must be non-negative.
    """
    if raw is None:
        return Decimal(0)

    if isinstance(raw, bool):
        raise ValidationError(f"{field} must be a number")

    if isinstance(raw, str):
        digits = _NON_DIGITS.sub("", raw)
        if not digits:
            return Decimal(0)
        value = Decimal(digits)
    elif isinstance(raw, (int, float, Decimal)):
        value = _to_decimal(raw, field)
        if value < 0:
            raise ValidationError(f"{field} must be >= 0")
    else:
        raise ValidationError(f"{field} must be a number")

    if value > MAX_AMOUNT:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT:,}")
    return value


def parse_decimal(raw: Any, field: str, *, allow_negative: bool = False) -> Decimal:
    """Parse a plain decimal (quantities, prices): "1.5", 1.5 or 2."""
    if raw is None or isinstance(raw, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(raw, str):
        stripped = raw.strip()
        if not stripped:
            raise ValidationError(f"{field} must be a number")
        # Reject scientific notation (e.g., "1e15")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain number (scientific notation not allowed)")
        value = _to_decimal(stripped, field)
    elif isinstance(raw, (int, float, Decimal)):
        value = _to_decimal(raw, field)
    else:
        raise ValidationError(f"{field} must be a number")

    if not allow_negative and value < 0:
        raise ValidationError(f"{field} must be >= 0")
    return value


def _to_decimal(raw: Any, field: str) -> Decimal:
    try:
        value = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not value.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return value


@dataclass(frozen=True)
class PayloadPolicy:
    """
    Central policy layer:
    - writable_fields: field name -> kind ("str", "decimal", "int", "bool")
    - required_on_create: fields required for POST
    """
    writable_fields: dict[str, str]
    required_on_create: frozenset[str] = frozenset()
    max_lengths: dict[str, int] | None = None


def validate_payload(*, payload: Any, policy: PayloadPolicy, partial: bool) -> dict:
    """
    Validates + normalizes an incoming JSON object against a policy.
    Returns a cleaned dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")

    max_lengths = policy.max_lengths or {}
    patch: dict = {}

    for k, raw in payload.items():
        kind = policy.writable_fields[k]
        if raw is None:
            if k in policy.required_on_create:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        if kind == "decimal":
            patch[k] = parse_decimal(raw, k)
        elif kind == "int":
            if isinstance(raw, bool):
                raise ValidationError(f"{k} must be an integer")
            if isinstance(raw, int):
                patch[k] = raw
            elif isinstance(raw, str) and raw.strip().isdigit():
                patch[k] = int(raw.strip())
            else:
                raise ValidationError(f"{k} must be an integer")
        elif kind == "bool":
            if not isinstance(raw, bool):
                raise ValidationError(f"{k} must be true or false")
            patch[k] = raw
        else:
            val = str(raw).strip()
            if k in policy.required_on_create and val == "":
                raise ValidationError(f"{k} cannot be blank")
            limit = max_lengths.get(k)
            if limit and len(val) > limit:
                raise ValidationError(f"{k} exceeds max length {limit}")
            patch[k] = val

    return patch
