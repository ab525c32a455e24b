# backend/branchstock/routes/transfers.py
"""
Inter-branch transfer API routes.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor
from ..errors import InventoryError, ValidationError
from ..extensions import db
from ..services import transfer_service


transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/transfers")


def _mutation(operation: str, func):
    try:
        return func()
    except InventoryError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Unexpected error during transfer %s", operation)
        return jsonify({"error": "Unexpected error"}), 500


@transfers_bp.route("", methods=["POST"])
@require_actor
def create_transfer():
    """
    Request a transfer.

    Request body:
    {
        "from_branch_id": int,
        "to_branch_id": int,
        "items": [{"product_id": int, "quantity_requested": int}],
        "notes": str (optional)
    }

    Returns:
        201: Transfer created (PENDING)
        400: Invalid request
        404: Branch or product not found
    """
    data = request.get_json(silent=True) or {}

    def _op():
        if data.get("from_branch_id") is None or data.get("to_branch_id") is None:
            raise ValidationError("from_branch_id and to_branch_id are required")
        transfer = transfer_service.create_transfer(
            from_branch_id=data["from_branch_id"],
            to_branch_id=data["to_branch_id"],
            items=data.get("items"),
            actor_id=g.actor_id,
            notes=data.get("notes"),
        )
        return jsonify(transfer_service.get_transfer_summary(transfer.id)), 201

    return _mutation("create", _op)


@transfers_bp.route("", methods=["GET"])
def list_transfers():
    """Query params: status, branch_id (source or destination), limit"""
    try:
        transfers = transfer_service.list_transfers(
            status=request.args.get("status"),
            branch_id=request.args.get("branch_id", type=int),
            limit=min(request.args.get("limit", 100, type=int), 500),
        )
        return jsonify({"items": [t.to_dict() for t in transfers]}), 200
    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code


@transfers_bp.route("/<int:transfer_id>", methods=["GET"])
def get_transfer(transfer_id: int):
    try:
        return jsonify(transfer_service.get_transfer_summary(transfer_id)), 200
    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code


@transfers_bp.route("/<int:transfer_id>/approve", methods=["POST"])
@require_actor
def approve_transfer(transfer_id: int):
    """
    Returns:
        200: Transfer approved
        404: Transfer not found
        409: Transfer not PENDING
    """
    def _op():
        transfer_service.approve_transfer(transfer_id=transfer_id, actor_id=g.actor_id)
        return jsonify(transfer_service.get_transfer_summary(transfer_id)), 200

    return _mutation("approve", _op)


@transfers_bp.route("/<int:transfer_id>/reject", methods=["POST"])
@require_actor
def reject_transfer(transfer_id: int):
    """
    Request body: {"reason": str}

    Returns:
        200: Transfer rejected
        400: Missing reason
        409: Transfer not PENDING
    """
    data = request.get_json(silent=True) or {}

    def _op():
        transfer_service.reject_transfer(
            transfer_id=transfer_id,
            reason=data.get("reason"),
            actor_id=g.actor_id,
        )
        return jsonify(transfer_service.get_transfer_summary(transfer_id)), 200

    return _mutation("reject", _op)


@transfers_bp.route("/<int:transfer_id>/send", methods=["POST"])
@require_actor
def send_transfer(transfer_id: int):
    """
    Ship an approved transfer. Deducts stock at the source branch.

    Request body (optional):
    {
        "quantities": {"<item_id>": int, ...}
    }
    Items left out ship their requested quantity.

    Returns:
        200: Transfer sent
        409: Not APPROVED, or source stock insufficient
    """
    data = request.get_json(silent=True) or {}

    def _op():
        transfer_service.send_transfer(
            transfer_id=transfer_id,
            sent_quantities=data.get("quantities"),
            actor_id=g.actor_id,
        )
        return jsonify(transfer_service.get_transfer_summary(transfer_id)), 200

    return _mutation("send", _op)


@transfers_bp.route("/<int:transfer_id>/receive", methods=["POST"])
@require_actor
def receive_transfer(transfer_id: int):
    """
    Receive a shipped transfer. Credits stock at the destination branch.

    Request body (optional):
    {
        "quantities": {"<item_id>": int, ...},
        "receiving_notes": str
    }
    Items left out are received at their sent quantity.

    Returns:
        200: Transfer received
        409: Not SENT
    """
    data = request.get_json(silent=True) or {}

    def _op():
        transfer_service.receive_transfer(
            transfer_id=transfer_id,
            received_quantities=data.get("quantities"),
            actor_id=g.actor_id,
            receiving_notes=data.get("receiving_notes"),
        )
        return jsonify(transfer_service.get_transfer_summary(transfer_id)), 200

    return _mutation("receive", _op)


@transfers_bp.route("/<int:transfer_id>", methods=["DELETE"])
@require_actor
def delete_transfer(transfer_id: int):
    """
    Returns:
        200: Transfer deleted
        409: Transfer already processed
    """
    def _op():
        transfer_service.delete_transfer(transfer_id=transfer_id, actor_id=g.actor_id)
        return jsonify({"status": "deleted", "transfer_id": transfer_id}), 200

    return _mutation("delete", _op)
