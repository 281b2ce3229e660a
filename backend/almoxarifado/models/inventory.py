from __future__ import annotations

from ..extensions import db
from almoxarifado.time_utils import to_utc_z, utcnow


MOVEMENT_KINDS = ("inbound", "outbound", "adjustment")
MOVEMENT_STATUSES = ("pending", "approved", "rejected")


class Material(db.Model):
    """
    Material master data.

    CODE DESIGN DECISION:
    Material.code is the stable business key. Bulk imports upsert by code,
    so it is unique across the warehouse and never reassigned.

    QUANTITY OWNERSHIP:
    current_quantity may be seeded at creation, but once a material has any
    movement it is written ONLY by transition_service.apply_movement().
    The material update path never accepts it.
    """
    __tablename__ = "materials"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_materials_code"),
        db.CheckConstraint("current_quantity >= 0", name="ck_materials_current_quantity_non_negative"),
        db.CheckConstraint("min_quantity >= 0", name="ck_materials_min_quantity_non_negative"),
        db.Index("ix_materials_name", "name"),
        db.Index("ix_materials_category", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    code = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(32), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(120), nullable=True)
    location = db.Column(db.String(120), nullable=True)

    current_quantity = db.Column(db.Integer, nullable=False, default=0)
    min_quantity = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    def __repr__(self) -> str:
        return f"<Material id={self.id} code={self.code!r} qty={self.current_quantity}>"

    @property
    def is_critical(self) -> bool:
        return self.current_quantity <= self.min_quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "unit": self.unit,
            "description": self.description,
            "category": self.category,
            "location": self.location,
            "current_quantity": self.current_quantity,
            "min_quantity": self.min_quantity,
            "is_critical": self.is_critical,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Movement(db.Model):
    """
    One recorded (or requested) change to a material's quantity.

    LIFECYCLE:
    - Self-service withdrawals are created 'pending' with no before/after.
    - Admin-direct inbound/adjustment movements are created 'approved'.
    - quantity_before/quantity_after are frozen once, inside the atomic
      transition that also updates Material.current_quantity.

    IMMUTABLE after creation except pending -> approved|rejected, and a single
    withdrawal signature on an approved outbound movement.
    """
    __tablename__ = "movements"
    __table_args__ = (
        db.CheckConstraint("requested_quantity > 0", name="ck_movements_requested_quantity_positive"),
        db.CheckConstraint(
            "kind IN ('inbound', 'outbound', 'adjustment')", name="ck_movements_kind"
        ),
        db.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')", name="ck_movements_status"
        ),
        db.Index("ix_movements_material_created", "material_id", "created_at"),
        db.Index("ix_movements_status_created", "status", "created_at"),
        db.Index("ix_movements_user_created", "requesting_user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    material_id = db.Column(db.Integer, db.ForeignKey("materials.id"), nullable=False, index=True)
    requesting_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    kind = db.Column(db.String(16), nullable=False, index=True)
    requested_quantity = db.Column(db.Integer, nullable=False)

    # NULL while pending; frozen by the atomic transition.
    # active_history keeps the previous value visible to the ledger flush guard.
    quantity_before = db.column_property(db.Column(db.Integer, nullable=True), active_history=True)
    quantity_after = db.column_property(db.Column(db.Integer, nullable=True), active_history=True)

    note = db.Column(db.String(500), nullable=True)

    withdrawal_signature = db.column_property(db.Column(db.Text, nullable=True), active_history=True)
    signed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    status = db.column_property(
        db.Column(db.String(16), nullable=False, default="pending", index=True),
        active_history=True,
    )

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    approver_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    material = db.relationship("Material", backref=db.backref("movements", lazy=True))
    requesting_user = db.relationship("User", foreign_keys=[requesting_user_id])
    approver = db.relationship("User", foreign_keys=[approver_user_id])

    def __repr__(self) -> str:
        return (
            f"<Movement id={self.id} material_id={self.material_id} kind={self.kind} "
            f"qty={self.requested_quantity} status={self.status}>"
        )

    @property
    def quantity_delta(self) -> int | None:
        if self.quantity_before is None or self.quantity_after is None:
            return None
        return self.quantity_after - self.quantity_before

    @property
    def is_signed(self) -> bool:
        return self.withdrawal_signature is not None

    def to_dict(self, *, include_signature: bool = False) -> dict:
        data = {
            "id": self.id,
            "material_id": self.material_id,
            "requesting_user_id": self.requesting_user_id,
            "kind": self.kind,
            "requested_quantity": self.requested_quantity,
            "quantity_before": self.quantity_before,
            "quantity_after": self.quantity_after,
            "note": self.note,
            "status": self.status,
            "is_signed": self.is_signed,
            "signed_at": to_utc_z(self.signed_at) if self.signed_at else None,
            "created_at": to_utc_z(self.created_at),
            "approver_user_id": self.approver_user_id,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
        }
        if self.material is not None:
            data["material"] = {
                "code": self.material.code,
                "name": self.material.name,
                "unit": self.material.unit,
                "current_quantity": self.material.current_quantity,
            }
        if self.requesting_user is not None:
            data["user"] = {"name": self.requesting_user.name, "email": self.requesting_user.email}
        if self.approver is not None:
            data["approver"] = {"name": self.approver.name, "email": self.approver.email}
        if include_signature:
            data["withdrawal_signature"] = self.withdrawal_signature
        return data
