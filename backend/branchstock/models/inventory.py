from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class BranchStock(db.Model):
    """
    Current on-hand quantity of one product at one branch.

    Rows are created lazily by the stock ledger on the first movement and
    are only ever mutated by it (atomic UPDATE quantity = quantity +/- q).
    """
    __tablename__ = "branch_stocks"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "product_id", name="uq_branch_stocks_branch_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=5)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    branch = db.relationship("Branch")
    product = db.relationship("Product")

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.min_stock

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "min_stock": self.min_stock,
            "is_low_stock": self.is_low_stock,
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only record of one quantity change.

    stock_after == stock_before + quantity (IN) or - quantity (OUT).
    reference_id points at a Sale or Transfer depending on reference_kind;
    it is intentionally not a foreign key.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_branch_product", "branch_id", "product_id"),
        db.Index("ix_stock_movements_reference", "reference_kind", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # IN | OUT
    direction = db.Column(db.String(8), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    stock_before = db.Column(db.Integer, nullable=False)
    stock_after = db.Column(db.Integer, nullable=False)

    # SALE | TRANSFER_OUT | TRANSFER_IN | ADJUSTMENT | INITIAL
    reference_kind = db.Column(db.String(16), nullable=False)
    reference_id = db.Column(db.Integer, nullable=True)

    notes = db.Column(db.String(500), nullable=True)
    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    @property
    def signed_quantity(self) -> int:
        return self.quantity if self.direction == "IN" else -self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "product_id": self.product_id,
            "direction": self.direction,
            "quantity": self.quantity,
            "stock_before": self.stock_before,
            "stock_after": self.stock_after,
            "reference_kind": self.reference_kind,
            "reference_id": self.reference_id,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
