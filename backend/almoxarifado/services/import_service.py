# Overview: Bulk stock import; upserts materials by code and loads stock through the ledger.

"""
Bulk Import Reconciler

Each line is handled on its own:
- normalize: trim strings, coerce numbers, accept English or Portuguese
  column names (codigo, nome, unidade_medida, quantidade, ...)
- validate: code, name, unit required; quantity > 0; min_quantity >= 0
- existing code -> inbound movement for the quantity (additive)
- new code -> material and its opening inbound movement (before = 0)
  committed together

A failing line is reported in ImportResult.errors and never aborts the
batch. Re-importing the same file adds the quantities again.
"""

from __future__ import annotations

import csv
import io
import json
from dataclasses import dataclass, field
from typing import Any, Iterable

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    coerce_int,
    enforce_rules_material,
    validate_movement_quantity,
)
from .concurrency import StorageError
from .inventory_service import get_material_by_code
from .transition_service import apply_movement, register_material_with_stock


BULK_LOAD_NOTE = "Bulk stock load"
INITIAL_LOAD_NOTE = "Initial registration via bulk load"

FIELD_ALIASES = {
    "code": ("code", "codigo", "código"),
    "name": ("name", "nome"),
    "unit": ("unit", "unidade_medida", "unidade"),
    "quantity": ("quantity", "quantidade"),
    "description": ("description", "descricao", "descrição"),
    "category": ("category", "categoria"),
    "min_quantity": ("min_quantity", "quantidade_minima", "quantidade_mínima"),
    "location": ("location", "localizacao", "localização"),
}

TEXT_LIMITS = {
    "code": 64,
    "name": 255,
    "unit": 32,
    "category": 120,
    "location": 120,
}

SPREADSHEET_EXTENSIONS = {"xlsx", "xlsm", "xltx", "xltm"}

MATERIAL_FIELDS = ("code", "name", "unit", "description", "category", "location", "min_quantity")


@dataclass
class ImportResult:
    created_count: int = 0
    updated_count: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)

    def add_error(self, line: int, code: str, message: str) -> None:
        self.errors.append({"line": line, "code": code, "message": message})

    def to_dict(self) -> dict:
        return {
            "created_count": self.created_count,
            "updated_count": self.updated_count,
            "error_count": len(self.errors),
            "errors": self.errors,
        }


def _lookup(raw: dict, aliases: tuple[str, ...]):
    for alias in aliases:
        if alias in raw:
            return raw[alias]
    return None


def _text(raw: dict, key: str, *, required: bool) -> str | None:
    value = _lookup(raw, FIELD_ALIASES[key])
    if value is None:
        text = ""
    elif isinstance(value, float) and value.is_integer():
        # Spreadsheet cells holding numeric codes come back as floats
        text = str(int(value))
    else:
        text = str(value).strip()

    if not text:
        if required:
            raise ValidationError(f"{key} is required")
        return None

    limit = TEXT_LIMITS.get(key)
    if limit and len(text) > limit:
        raise ValidationError(f"{key} exceeds max length {limit}")
    return text


def normalize_line(raw: Any) -> dict:
    """Turn one uploaded row into a validated line dict."""
    if not isinstance(raw, dict):
        raise ValidationError("Each line must be an object")

    raw = {str(k).strip().lower(): v for k, v in raw.items() if k is not None}

    line = {
        "code": _text(raw, "code", required=True),
        "name": _text(raw, "name", required=True),
        "unit": _text(raw, "unit", required=True),
        "description": _text(raw, "description", required=False),
        "category": _text(raw, "category", required=False),
        "location": _text(raw, "location", required=False),
    }

    line["quantity"] = validate_movement_quantity(_lookup(raw, FIELD_ALIASES["quantity"]))

    min_raw = _lookup(raw, FIELD_ALIASES["min_quantity"])
    if min_raw is None or (isinstance(min_raw, str) and not min_raw.strip()):
        line["min_quantity"] = 0
    else:
        line["min_quantity"] = coerce_int("min_quantity", min_raw)

    enforce_rules_material(line)
    return line


def _reconcile_line(line: dict, *, acting_user_id: int, result: ImportResult) -> None:
    existing = get_material_by_code(line["code"])

    if existing is not None:
        apply_movement(
            material_id=existing.id,
            acting_user_id=acting_user_id,
            kind="inbound",
            quantity=line["quantity"],
            note=BULK_LOAD_NOTE,
            status="approved",
            approver_user_id=acting_user_id,
        )
        result.updated_count += 1
        return

    fields = {key: line[key] for key in MATERIAL_FIELDS}
    register_material_with_stock(
        fields,
        acting_user_id=acting_user_id,
        quantity=line["quantity"],
        note=INITIAL_LOAD_NOTE,
    )
    result.created_count += 1


def reconcile(lines: Iterable[Any], *, acting_user_id: int) -> ImportResult:
    """
    Apply every line independently and collect per-line errors.

    Line numbers in errors are 1-based positions in the input.
    """
    result = ImportResult()

    for index, raw in enumerate(lines, start=1):
        try:
            line = normalize_line(raw)
            _reconcile_line(line, acting_user_id=acting_user_id, result=result)
        except ValidationError as exc:
            result.add_error(index, "validation_error", str(exc))
        except NotFoundError as exc:
            result.add_error(index, "not_found", str(exc))
        except ConflictError as exc:
            result.add_error(index, "conflict", str(exc))
        except (StorageError, SQLAlchemyError):
            db.session.rollback()
            current_app.logger.exception("Bulk import line %s failed", index)
            result.add_error(index, "storage_error", "Failed to record this line")

    current_app.logger.info(
        "Bulk import by user %s: created=%s updated=%s errors=%s",
        acting_user_id, result.created_count, result.updated_count, len(result.errors),
    )
    return result


def _is_blank_row(row: dict) -> bool:
    return all(v is None or (isinstance(v, str) and not v.strip()) for v in row.values())


def _rows_from_csv(data: bytes) -> list[dict]:
    text = data.decode("utf-8-sig")
    header = text.splitlines()[0] if text.strip() else ""
    delimiter = ";" if header.count(";") > header.count(",") else ","
    reader = csv.DictReader(io.StringIO(text), delimiter=delimiter)
    return [row for row in reader]


def _rows_from_json(data: bytes) -> list:
    payload = json.loads(data.decode("utf-8-sig"))
    if isinstance(payload, dict):
        payload = payload.get("items", payload.get("rows", []))
    if not isinstance(payload, list):
        raise ValidationError("JSON upload must be a list or an object with 'items'")
    return payload


def _rows_from_xlsx(stream) -> list[dict]:
    from openpyxl import load_workbook

    wb = load_workbook(stream, data_only=True, read_only=True)
    try:
        data = list(wb.active.values)
    finally:
        wb.close()
    if not data:
        return []
    headers = [str(h).strip() if h is not None else "" for h in data[0]]
    return [
        {headers[i]: row[i] for i in range(min(len(headers), len(row))) if headers[i]}
        for row in data[1:]
    ]


def rows_from_upload(filename: str, stream) -> list:
    """
    Parse an uploaded CSV (comma or semicolon), JSON or XLSX file into lines.

    Fully blank rows are dropped.
    """
    ext = (filename or "").rsplit(".", 1)[-1].lower()

    try:
        if ext == "csv":
            rows = _rows_from_csv(stream.read())
        elif ext == "json":
            rows = _rows_from_json(stream.read())
        elif ext in SPREADSHEET_EXTENSIONS:
            rows = _rows_from_xlsx(stream)
        else:
            raise ValidationError("Unsupported file format (use .csv, .json or .xlsx)")
    except ValidationError:
        raise
    except Exception as exc:
        current_app.logger.warning("Failed to parse upload %s: %s", filename, exc)
        raise ValidationError("Failed to parse upload") from exc

    return [row for row in rows if not (isinstance(row, dict) and _is_blank_row(row))]
