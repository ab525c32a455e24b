# backend/branchstock/routes/product_requests.py
"""
Product catalog request API routes.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor
from ..errors import InventoryError, ValidationError
from ..extensions import db
from ..services import product_request_service


product_requests_bp = Blueprint("product_requests", __name__, url_prefix="/api/product-requests")


@product_requests_bp.route("", methods=["POST"])
@require_actor
def create_request():
    """
    Request body:
    {
        "branch_id": int,
        "sku": str,
        "name": str,
        "price_cents": int,
        "color": str, "size": str, "description": str, "request_notes": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        if data.get("branch_id") is None:
            raise ValidationError("branch_id is required")
        req = product_request_service.create_request(
            branch_id=data["branch_id"],
            actor_id=g.actor_id,
            sku=data.get("sku"),
            name=data.get("name"),
            price_cents=data.get("price_cents", 0),
            color=data.get("color"),
            size=data.get("size"),
            description=data.get("description"),
            request_notes=data.get("request_notes"),
        )
        return jsonify(req.to_dict()), 201

    except InventoryError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Unexpected error creating product request")
        return jsonify({"error": "Unexpected error"}), 500


@product_requests_bp.route("", methods=["GET"])
def list_requests():
    try:
        reqs = product_request_service.list_requests(
            status=request.args.get("status"),
            branch_id=request.args.get("branch_id", type=int),
        )
        return jsonify({"items": [r.to_dict() for r in reqs]}), 200
    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code


@product_requests_bp.route("/<int:request_id>/approve", methods=["POST"])
@require_actor
def approve_request(request_id: int):
    try:
        req = product_request_service.approve_request(request_id=request_id, actor_id=g.actor_id)
        return jsonify(req.to_dict()), 200

    except InventoryError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Unexpected error approving product request")
        return jsonify({"error": "Unexpected error"}), 500


@product_requests_bp.route("/<int:request_id>/reject", methods=["POST"])
@require_actor
def reject_request(request_id: int):
    """Request body: {"reason": str}"""
    data = request.get_json(silent=True) or {}

    try:
        req = product_request_service.reject_request(
            request_id=request_id,
            reason=data.get("reason"),
            actor_id=g.actor_id,
        )
        return jsonify(req.to_dict()), 200

    except InventoryError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Unexpected error rejecting product request")
        return jsonify({"error": "Unexpected error"}), 500
