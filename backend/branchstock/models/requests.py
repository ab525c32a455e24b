from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class ProductRequest(db.Model):
    """
    A branch's request to add a product to the shared catalog.

    PENDING -> APPROVED (creates the Product) or PENDING -> REJECTED.
    No stock side effects.
    """
    __tablename__ = "product_requests"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    requested_by = db.Column(db.Integer, nullable=False)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    color = db.Column(db.String(64), nullable=True)
    size = db.Column(db.String(32), nullable=True)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    description = db.Column(db.Text, nullable=True)
    request_notes = db.Column(db.Text, nullable=True)

    # PENDING, APPROVED, REJECTED
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    approved_by = db.Column(db.Integer, nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    branch = db.relationship("Branch")
    product = db.relationship("Product")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "requested_by": self.requested_by,
            "sku": self.sku,
            "name": self.name,
            "color": self.color,
            "size": self.size,
            "price_cents": self.price_cents,
            "description": self.description,
            "request_notes": self.request_notes,
            "status": self.status,
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "rejection_reason": self.rejection_reason,
            "product_id": self.product_id,
            "created_at": to_utc_z(self.created_at),
        }
