# Overview: Inter-branch transfer workflow. PENDING -> APPROVED -> SENT -> RECEIVED,
# or PENDING -> REJECTED. SEND and RECEIVE move stock through the ledger.

from __future__ import annotations

from flask import current_app

from ..errors import (
    EntityNotFound,
    InsufficientSourceStock,
    InsufficientStock,
    InvalidQuantity,
    InvalidTransition,
    ValidationError,
)
from ..extensions import db
from ..models import MovementDirection, ReferenceKind, Transfer, TransferItem, TransferStatus
from ..time_utils import utcnow
from ..validation import coerce_int, non_negative_quantity, optional_text, positive_quantity
from . import document_service, stock_ledger
from .concurrency import lock_for_update, run_in_transaction


APPROVE = "approve"
REJECT = "reject"
SEND = "send"
RECEIVE = "receive"
DELETE = "delete"

# operation -> (statuses it may start from, status it leaves behind)
TRANSITIONS: dict[str, tuple[frozenset, TransferStatus | None]] = {
    APPROVE: (frozenset({TransferStatus.PENDING}), TransferStatus.APPROVED),
    REJECT: (frozenset({TransferStatus.PENDING}), TransferStatus.REJECTED),
    SEND: (frozenset({TransferStatus.APPROVED}), TransferStatus.SENT),
    RECEIVE: (frozenset({TransferStatus.SENT}), TransferStatus.RECEIVED),
    DELETE: (frozenset({TransferStatus.PENDING}), None),
}

TERMINAL_STATUSES = frozenset({TransferStatus.REJECTED, TransferStatus.RECEIVED})


def _limits_enforced() -> bool:
    return bool(current_app.config.get("ENFORCE_TRANSFER_QUANTITY_LIMITS", False))


def _load_for_update(transfer_id: int) -> Transfer:
    transfer = lock_for_update(db.session.query(Transfer).filter_by(id=transfer_id)).first()
    if transfer is None:
        raise EntityNotFound(f"Transfer {transfer_id} not found", {"transfer_id": transfer_id})
    return transfer


def guard(transfer: Transfer, operation: str) -> TransferStatus | None:
    """Raise InvalidTransition unless the operation may run from the current status."""
    allowed, target = TRANSITIONS[operation]
    if TransferStatus(transfer.status) not in allowed:
        raise InvalidTransition(
            f"Cannot {operation} transfer {transfer.transfer_number} in status {transfer.status}",
            {
                "transfer_id": transfer.id,
                "operation": operation,
                "status": transfer.status,
                "allowed_from": sorted(s.value for s in allowed),
            },
        )
    return target


def _resolve_quantities(transfer: Transfer, quantities, default_attr: str, field: str) -> dict[int, int]:
    """
    Map every item id to the quantity to book.

    Items absent from the mapping default to default_attr on the item.
    Ids that do not belong to the transfer raise EntityNotFound.
    """
    quantities = quantities or {}
    if not isinstance(quantities, dict):
        raise ValidationError(f"{field} must be an object keyed by item id")

    items_by_id = {item.id: item for item in transfer.items}
    provided: dict[int, int] = {}
    for raw_id, raw_qty in quantities.items():
        item_id = coerce_int(raw_id, "item_id")
        if item_id not in items_by_id:
            raise EntityNotFound(
                f"Item {item_id} is not part of transfer {transfer.transfer_number}",
                {"transfer_id": transfer.id, "item_id": item_id},
            )
        provided[item_id] = non_negative_quantity(raw_qty, f"{field}[{item_id}]")

    resolved = {}
    for item_id, item in items_by_id.items():
        default = getattr(item, default_attr) or 0
        resolved[item_id] = provided.get(item_id, default)
    return resolved


def create_transfer(
    *,
    from_branch_id: int,
    to_branch_id: int,
    items,
    actor_id: int,
    notes: str | None = None,
) -> Transfer:
    """
    Request stock from another branch.

    items: [{"product_id": int, "quantity_requested": int}, ...]
    Stock is not checked here; the source branch is checked at send time.
    """
    from_branch_id = stock_ledger.require_branch(from_branch_id).id
    to_branch_id = stock_ledger.require_branch(to_branch_id).id
    if from_branch_id == to_branch_id:
        raise ValidationError("Source and destination branches must differ")

    if not items:
        raise ValidationError("Transfer must contain at least one item")

    lines = []
    seen: set[int] = set()
    for index, raw in enumerate(items):
        if not isinstance(raw, dict) or raw.get("product_id") is None:
            raise ValidationError(f"items[{index}].product_id is required")
        product_id = coerce_int(raw["product_id"], f"items[{index}].product_id")
        stock_ledger.require_product(product_id)
        if product_id in seen:
            raise ValidationError(
                f"Product {product_id} is listed more than once",
                {"product_id": product_id},
            )
        seen.add(product_id)
        quantity = positive_quantity(
            raw.get("quantity_requested", raw.get("quantity")),
            f"items[{index}].quantity_requested",
        )
        lines.append((product_id, quantity))

    def _op() -> Transfer:
        transfer = Transfer(
            transfer_number=document_service.next_document_number(
                branch_id=from_branch_id,
                document_type=document_service.TRANSFER,
            ),
            from_branch_id=from_branch_id,
            to_branch_id=to_branch_id,
            status=TransferStatus.PENDING.value,
            requested_by=actor_id,
            requested_at=utcnow(),
            notes=optional_text(notes, "notes", 2000),
        )
        for product_id, quantity in lines:
            transfer.items.append(TransferItem(product_id=product_id, quantity_requested=quantity))
        db.session.add(transfer)
        return transfer

    transfer = run_in_transaction(_op)
    current_app.logger.info(
        "transfer.created %s %s->%s by actor %s",
        transfer.transfer_number, from_branch_id, to_branch_id, actor_id,
    )
    return transfer


def approve_transfer(*, transfer_id: int, actor_id: int) -> Transfer:
    def _op() -> Transfer:
        transfer = _load_for_update(transfer_id)
        target = guard(transfer, APPROVE)
        transfer.status = target.value
        transfer.approved_by = actor_id
        transfer.approved_at = utcnow()
        return transfer

    transfer = run_in_transaction(_op)
    current_app.logger.info("transfer.approved %s by actor %s", transfer.transfer_number, actor_id)
    return transfer


def reject_transfer(*, transfer_id: int, reason: str, actor_id: int) -> Transfer:
    reason = optional_text(reason, "reason", 2000)
    if not reason:
        raise ValidationError("A rejection reason is required")

    def _op() -> Transfer:
        transfer = _load_for_update(transfer_id)
        target = guard(transfer, REJECT)
        transfer.status = target.value
        transfer.approved_by = actor_id
        transfer.approved_at = utcnow()
        transfer.rejection_reason = reason
        return transfer

    transfer = run_in_transaction(_op)
    current_app.logger.info("transfer.rejected %s by actor %s", transfer.transfer_number, actor_id)
    return transfer


def send_transfer(*, transfer_id: int, sent_quantities=None, actor_id: int) -> Transfer:
    """
    Ship an approved transfer out of the source branch.

    Every item is checked against the source branch before any stock moves;
    a shortfall raises InsufficientSourceStock and nothing is written.
    Items shipped with quantity 0 get no movement.
    """
    def _op() -> Transfer:
        transfer = _load_for_update(transfer_id)
        target = guard(transfer, SEND)
        resolved = _resolve_quantities(transfer, sent_quantities, "quantity_requested", "sent_quantities")

        items = list(transfer.items)
        if _limits_enforced():
            for item in items:
                if resolved[item.id] > item.quantity_requested:
                    raise InvalidQuantity(
                        f"Cannot send {resolved[item.id]} of product {item.product_id}; "
                        f"only {item.quantity_requested} requested",
                        {"item_id": item.id, "sent": resolved[item.id], "requested": item.quantity_requested},
                    )

        per_product: dict[int, int] = {}
        for item in items:
            per_product[item.product_id] = per_product.get(item.product_id, 0) + resolved[item.id]
        shortages = []
        for product_id, needed in per_product.items():
            if needed and not stock_ledger.is_available(transfer.from_branch_id, product_id, needed):
                shortages.append({
                    "product_id": product_id,
                    "requested": needed,
                    "available": stock_ledger.current_quantity(transfer.from_branch_id, product_id),
                })
        if shortages:
            raise InsufficientSourceStock(
                f"Source branch cannot cover transfer {transfer.transfer_number}",
                {"transfer_id": transfer.id, "branch_id": transfer.from_branch_id, "items": shortages},
            )

        for item in items:
            quantity = resolved[item.id]
            item.quantity_sent = quantity
            if quantity <= 0:
                continue
            try:
                stock_ledger.adjust(
                    transfer.from_branch_id,
                    item.product_id,
                    quantity,
                    MovementDirection.OUT,
                    ReferenceKind.TRANSFER_OUT,
                    transfer.id,
                    f"Transfer {transfer.transfer_number}",
                    actor_id,
                    commit=False,
                )
            except InsufficientStock as exc:
                raise InsufficientSourceStock(str(exc), exc.details) from exc

        transfer.delivery_note_number = document_service.next_document_number(
            branch_id=transfer.from_branch_id,
            document_type=document_service.DELIVERY_NOTE,
        )
        transfer.status = target.value
        transfer.sent_by = actor_id
        transfer.sent_at = utcnow()
        return transfer

    transfer = run_in_transaction(_op)
    current_app.logger.info(
        "transfer.sent %s (%s) by actor %s",
        transfer.transfer_number, transfer.delivery_note_number, actor_id,
    )
    return transfer


def receive_transfer(
    *,
    transfer_id: int,
    received_quantities=None,
    actor_id: int,
    receiving_notes: str | None = None,
) -> Transfer:
    """Book a shipped transfer into the destination branch."""
    def _op() -> Transfer:
        transfer = _load_for_update(transfer_id)
        target = guard(transfer, RECEIVE)
        resolved = _resolve_quantities(transfer, received_quantities, "quantity_sent", "received_quantities")

        items = list(transfer.items)
        if _limits_enforced():
            for item in items:
                sent = item.quantity_sent or 0
                if resolved[item.id] > sent:
                    raise InvalidQuantity(
                        f"Cannot receive {resolved[item.id]} of product {item.product_id}; only {sent} sent",
                        {"item_id": item.id, "received": resolved[item.id], "sent": sent},
                    )

        for item in items:
            quantity = resolved[item.id]
            item.quantity_received = quantity
            if quantity <= 0:
                continue
            stock_ledger.adjust(
                transfer.to_branch_id,
                item.product_id,
                quantity,
                MovementDirection.IN,
                ReferenceKind.TRANSFER_IN,
                transfer.id,
                f"Transfer {transfer.transfer_number}",
                actor_id,
                commit=False,
            )

        transfer.status = target.value
        transfer.received_by = actor_id
        transfer.received_at = utcnow()
        transfer.receiving_notes = optional_text(receiving_notes, "receiving_notes", 2000)
        return transfer

    transfer = run_in_transaction(_op)
    current_app.logger.info("transfer.received %s by actor %s", transfer.transfer_number, actor_id)
    return transfer


def delete_transfer(*, transfer_id: int, actor_id: int | None = None) -> None:
    """Remove a transfer that was never approved or rejected."""
    def _op() -> str:
        transfer = _load_for_update(transfer_id)
        guard(transfer, DELETE)
        number = transfer.transfer_number
        db.session.delete(transfer)
        return number

    number = run_in_transaction(_op)
    current_app.logger.info("transfer.deleted %s by actor %s", number, actor_id)


def get_transfer(transfer_id: int) -> Transfer:
    transfer = db.session.get(Transfer, transfer_id)
    if transfer is None:
        raise EntityNotFound(f"Transfer {transfer_id} not found", {"transfer_id": transfer_id})
    return transfer


def get_transfer_summary(transfer_id: int) -> dict:
    transfer = get_transfer(transfer_id)
    data = transfer.to_dict()
    data["items"] = [item.to_dict() for item in transfer.items]
    data["total_requested"] = sum(item.quantity_requested for item in transfer.items)
    data["total_sent"] = sum(item.quantity_sent or 0 for item in transfer.items)
    data["total_received"] = sum(item.quantity_received or 0 for item in transfer.items)
    data["is_terminal"] = TransferStatus(transfer.status) in TERMINAL_STATUSES
    return data


def list_transfers(
    *,
    status: str | None = None,
    branch_id: int | None = None,
    limit: int = 100,
) -> list[Transfer]:
    query = db.session.query(Transfer)
    if status:
        try:
            query = query.filter(Transfer.status == TransferStatus(status.upper()).value)
        except ValueError as exc:
            raise ValidationError(f"Invalid transfer status: {status}") from exc
    if branch_id is not None:
        query = query.filter(
            (Transfer.from_branch_id == branch_id) | (Transfer.to_branch_id == branch_id)
        )
    return query.order_by(Transfer.id.desc()).limit(limit).all()
