# Overview: Service-layer operations for reporting; dashboard aggregates and CSV exports.

from __future__ import annotations

import csv
import io
from collections import defaultdict
from datetime import datetime, timedelta

from sqlalchemy import func

from almoxarifado.extensions import db
from almoxarifado.models import Material, Movement
from almoxarifado.services.lifecycle_service import validate_status
from almoxarifado.services.ledger_service import list_movements
from almoxarifado.time_utils import days_ago, parse_iso_datetime, utcnow, to_utc_z
from almoxarifado.validation import ValidationError


TREND_DAYS = 30
TOP_N = 5
CSV_DELIMITER = ";"


class ReportError(ValidationError):
    """Raised when report parameters are invalid."""
    pass


def _parse_range(start: str | None, end: str | None) -> tuple[datetime | None, datetime | None]:
    try:
        start_dt = parse_iso_datetime(start) if start else None
        end_dt = parse_iso_datetime(end) if end else None
    except ValueError:
        raise ReportError("start and end must be ISO-8601 dates")
    if start_dt and end_dt and start_dt > end_dt:
        raise ReportError("start must be before end")
    return start_dt, end_dt


def critical_materials(*, limit: int | None = None) -> list[dict]:
    """Materials at or below their minimum, largest deficit first."""
    materials = (
        db.session.query(Material)
        .filter(Material.current_quantity <= Material.min_quantity)
        .all()
    )
    rows = [
        {
            "id": m.id,
            "code": m.code,
            "name": m.name,
            "unit": m.unit,
            "current_quantity": m.current_quantity,
            "min_quantity": m.min_quantity,
            "deficit": m.min_quantity - m.current_quantity,
        }
        for m in materials
    ]
    rows.sort(key=lambda r: (-r["deficit"], r["name"]))
    if limit is not None:
        rows = rows[:limit]
    return rows


def _approved_since(since: datetime) -> list[Movement]:
    return (
        db.session.query(Movement)
        .filter(Movement.status == "approved", Movement.created_at >= since)
        .all()
    )


def movement_trend(movements: list[Movement], *, days: int = TREND_DAYS) -> list[dict]:
    """
    Daily inbound vs outbound quantities, oldest day first.

    Direction comes from the frozen before/after, so decreasing
    adjustments count as outbound.
    """
    today = utcnow().date()
    buckets = {
        (today - timedelta(days=offset)).isoformat(): {"inbound": 0, "outbound": 0}
        for offset in range(days)
    }

    for m in movements:
        key = m.created_at.date().isoformat()
        bucket = buckets.get(key)
        if bucket is None:
            continue
        if (m.quantity_delta or 0) < 0:
            bucket["outbound"] += m.requested_quantity
        else:
            bucket["inbound"] += m.requested_quantity

    return [{"date": day, **buckets[day]} for day in sorted(buckets)]


def top_moving_materials(movements: list[Movement], *, limit: int = TOP_N) -> list[dict]:
    totals: dict[int, int] = defaultdict(int)
    for m in movements:
        totals[m.material_id] += m.requested_quantity

    ranked = sorted(totals.items(), key=lambda item: (-item[1], item[0]))[:limit]
    if not ranked:
        return []

    materials = {
        m.id: m
        for m in db.session.query(Material).filter(Material.id.in_([mid for mid, _ in ranked])).all()
    }
    return [
        {
            "material_id": mid,
            "code": materials[mid].code,
            "name": materials[mid].name,
            "unit": materials[mid].unit,
            "total_quantity": total,
        }
        for mid, total in ranked
        if mid in materials
    ]


def dashboard() -> dict:
    since = days_ago(TREND_DAYS)
    recent = _approved_since(since)

    material_count = db.session.query(func.count(Material.id)).scalar() or 0
    critical_count = (
        db.session.query(func.count(Material.id))
        .filter(Material.current_quantity <= Material.min_quantity)
        .scalar()
        or 0
    )
    zero_stock_count = (
        db.session.query(func.count(Material.id))
        .filter(Material.current_quantity == 0)
        .scalar()
        or 0
    )
    pending_count = (
        db.session.query(func.count(Movement.id))
        .filter(Movement.status == "pending")
        .scalar()
        or 0
    )

    return {
        "generated_at": to_utc_z(utcnow()),
        "material_count": material_count,
        "critical_count": critical_count,
        "zero_stock_count": zero_stock_count,
        "pending_count": pending_count,
        "approved_movements_last_30_days": len(recent),
        "critical_materials": critical_materials(limit=TOP_N),
        "top_moving_materials": top_moving_materials(recent),
        "trend": movement_trend(recent),
    }


def _to_csv(header: list[str], rows) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=CSV_DELIMITER)
    writer.writerow(header)
    for row in rows:
        writer.writerow(row)
    return buffer.getvalue()


def inventory_csv() -> str:
    materials = db.session.query(Material).order_by(Material.name.asc(), Material.id.asc()).all()
    return _to_csv(
        ["code", "name", "unit", "category", "location", "current_quantity", "min_quantity", "status"],
        (
            [
                m.code, m.name, m.unit, m.category or "", m.location or "",
                m.current_quantity, m.min_quantity, "critical" if m.is_critical else "ok",
            ]
            for m in materials
        ),
    )


def critical_csv() -> str:
    return _to_csv(
        ["code", "name", "unit", "current_quantity", "min_quantity", "deficit"],
        (
            [r["code"], r["name"], r["unit"], r["current_quantity"], r["min_quantity"], r["deficit"]]
            for r in critical_materials()
        ),
    )


def movements_csv(*, start: str | None = None, end: str | None = None, status: str | None = None) -> str:
    start_dt, end_dt = _parse_range(start, end)
    if status:
        validate_status(status)

    movements = list_movements(status=status or None, start=start_dt, end=end_dt, limit=None)
    return _to_csv(
        [
            "id", "created_at", "material_code", "material_name", "kind", "quantity",
            "quantity_before", "quantity_after", "status", "requested_by", "approved_by",
            "approved_at", "signed", "note",
        ],
        (
            [
                m.id,
                to_utc_z(m.created_at),
                m.material.code,
                m.material.name,
                m.kind,
                m.requested_quantity,
                "" if m.quantity_before is None else m.quantity_before,
                "" if m.quantity_after is None else m.quantity_after,
                m.status,
                m.requesting_user.email,
                m.approver.email if m.approver else "",
                to_utc_z(m.approved_at) if m.approved_at else "",
                "yes" if m.is_signed else "no",
                m.note or "",
            ]
            for m in movements
        ),
    )
