from __future__ import annotations
import base64
import binascii
import re
from datetime import datetime
from almoxarifado.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Upper bound for any single quantity (stock level or movement)
MAX_QUANTITY = 999_999_999


class ValidationError(ValueError):
    """400-level input problem."""


class NotFoundError(ValueError):
    """404-level missing material, movement or user."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate code, double approval)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(key: str, value: Any) -> int:
    """
    Strict integer coercion shared by payload validation and bulk import.

    Accepts ints and plain digit strings; rejects bools, decimals and
    scientific notation. Floats with no fractional part (e.g. 5.0 from a
    spreadsheet cell) are accepted.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        raise ValidationError(f"{key} must be an integer, not a decimal")
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped or ',' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    raise ValidationError(f"{key} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

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
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Blank optional strings are stored as NULL
        if isinstance(col.type, (String, Text)) and col.nullable and val == "":
            val = None

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def _check_quantity_range(key: str, value: int, *, minimum: int) -> None:
    if value < minimum:
        raise ValidationError(f"{key} must be >= {minimum}")
    if value > MAX_QUANTITY:
        raise ValidationError(f"{key} cannot exceed {MAX_QUANTITY}")


def enforce_rules_material(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if patch.get("current_quantity") is not None:
        _check_quantity_range("current_quantity", patch["current_quantity"], minimum=0)
    if patch.get("min_quantity") is not None:
        _check_quantity_range("min_quantity", patch["min_quantity"], minimum=0)
    if "code" in patch and patch["code"] is not None:
        patch["code"] = patch["code"].upper()


def validate_movement_quantity(value: Any) -> int:
    """Movement quantities are strictly positive integers."""
    if value is None:
        raise ValidationError("quantity is required")
    quantity = coerce_int("quantity", value)
    _check_quantity_range("quantity", quantity, minimum=1)
    return quantity


def validate_note(value: Any, *, max_length: int = 500) -> str | None:
    if value is None:
        return None
    note = str(value).strip()
    if not note:
        return None
    if len(note) > max_length:
        raise ValidationError(f"note exceeds max length {max_length}")
    return note


SIGNATURE_PREFIX_RE = re.compile(r"^data:image/(png|jpeg|jpg|webp|svg\+xml);base64,", re.IGNORECASE)


def validate_signature_image(value: Any, *, max_bytes: int) -> str:
    """
    Withdrawal signatures arrive as data URLs from the signature pad.

    The base64 payload must decode and its decoded size must not exceed
    max_bytes.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("signature_image is required")
    value = value.strip()
    match = SIGNATURE_PREFIX_RE.match(value)
    if not match:
        raise ValidationError("signature_image must be a data:image/...;base64 URL")
    try:
        raw = base64.b64decode(value[match.end():], validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("signature_image is not valid base64")
    if not raw:
        raise ValidationError("signature_image is empty")
    if len(raw) > max_bytes:
        raise ValidationError(f"signature_image exceeds {max_bytes} bytes")
    return value
