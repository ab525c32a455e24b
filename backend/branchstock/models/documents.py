from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Transfer(db.Model):
    """
    Inter-branch stock transfer document.

    LIFECYCLE:
    1. PENDING: requested by the destination side, awaiting approval
    2. APPROVED: approved, ready to ship
    3. SENT: shipped; stock deducted at the source branch
    4. RECEIVED: received; stock credited at the destination branch
    5. REJECTED: turned down while pending (terminal)

    Transfer numbers are scoped to the source branch (TRF/<code>/YYYY/MM/NNN).
    version_id guards status writes against concurrent transitions.
    """
    __tablename__ = "transfers"
    __table_args__ = (
        db.CheckConstraint("from_branch_id <> to_branch_id", name="ck_transfers_distinct_branches"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transfer_number = db.Column(db.String(64), nullable=False, unique=True, index=True)

    from_branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    to_branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    # PENDING, APPROVED, REJECTED, SENT, RECEIVED
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    requested_by = db.Column(db.Integer, nullable=False)
    requested_at = db.Column(db.DateTime(timezone=True), nullable=False)
    # Set by approve and by reject
    approved_by = db.Column(db.Integer, nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    sent_by = db.Column(db.Integer, nullable=True)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    received_by = db.Column(db.Integer, nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)

    delivery_note_number = db.Column(db.String(64), nullable=True, unique=True)
    notes = db.Column(db.Text, nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)
    receiving_notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    from_branch = db.relationship("Branch", foreign_keys=[from_branch_id])
    to_branch = db.relationship("Branch", foreign_keys=[to_branch_id])
    items = db.relationship(
        "TransferItem",
        backref="transfer",
        lazy=True,
        order_by="TransferItem.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transfer_number": self.transfer_number,
            "from_branch_id": self.from_branch_id,
            "to_branch_id": self.to_branch_id,
            "status": self.status,
            "requested_by": self.requested_by,
            "requested_at": to_utc_z(self.requested_at),
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "sent_by": self.sent_by,
            "sent_at": to_utc_z(self.sent_at) if self.sent_at else None,
            "received_by": self.received_by,
            "received_at": to_utc_z(self.received_at) if self.received_at else None,
            "delivery_note_number": self.delivery_note_number,
            "notes": self.notes,
            "rejection_reason": self.rejection_reason,
            "receiving_notes": self.receiving_notes,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class TransferItem(db.Model):
    """
    One product line on a transfer.

    quantity_sent stays NULL until SEND and quantity_received until RECEIVE.
    """
    __tablename__ = "transfer_items"
    __table_args__ = (
        db.UniqueConstraint("transfer_id", "product_id", name="uq_transfer_items_transfer_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transfer_id = db.Column(db.Integer, db.ForeignKey("transfers.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity_requested = db.Column(db.Integer, nullable=False)
    quantity_sent = db.Column(db.Integer, nullable=True)
    quantity_received = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transfer_id": self.transfer_id,
            "product_id": self.product_id,
            "quantity_requested": self.quantity_requested,
            "quantity_sent": self.quantity_sent,
            "quantity_received": self.quantity_received,
        }


class DocumentSequence(db.Model):
    """
    Atomic per-branch, per-month document counters.

    One row per (branch, document type, "YYYY/MM" period); next_number is
    incremented with a single UPDATE inside the caller's transaction.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "document_type", "period", name="uq_doc_sequences_branch_type_period"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False, index=True)
    period = db.Column(db.String(7), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "document_type": self.document_type,
            "period": self.period,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
