# backend/branchstock/routes/stock.py
"""
Stock ledger API routes: levels, movements, manual adjustments.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor
from ..errors import InventoryError, ValidationError
from ..extensions import db
from ..services import stock_ledger
from ..time_utils import parse_iso_datetime


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


def _parse_datetime_arg(name: str):
    try:
        return parse_iso_datetime(request.args.get(name))
    except ValueError as exc:
        raise ValidationError(f"{name} must be an ISO-8601 date or datetime") from exc


@stock_bp.route("", methods=["GET"])
def list_stock():
    """
    List stock rows.

    Query params: branch_id, search, low_stock (true/false), limit
    """
    try:
        rows = stock_ledger.list_stock(
            branch_id=request.args.get("branch_id", type=int),
            search=request.args.get("search"),
            low_stock=request.args.get("low_stock", "").lower() in ("1", "true", "yes"),
            limit=request.args.get("limit", type=int),
        )
        return jsonify({"items": [row.to_dict() for row in rows]}), 200
    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code


@stock_bp.route("/low", methods=["GET"])
def low_stock():
    rows = stock_ledger.low_stock(request.args.get("branch_id", type=int))
    return jsonify({"items": [row.to_dict() for row in rows]}), 200


@stock_bp.route("/<int:branch_id>/<int:product_id>", methods=["GET"])
def get_stock(branch_id: int, product_id: int):
    """
    Current quantity for one product at one branch.

    Query params: qty (optional) to also answer "is this much available?"
    """
    data = {
        "branch_id": branch_id,
        "product_id": product_id,
        "quantity": stock_ledger.current_quantity(branch_id, product_id),
    }
    stock = stock_ledger.get_stock(branch_id, product_id)
    data["min_stock"] = stock.min_stock if stock else None
    data["is_low_stock"] = stock.is_low_stock if stock else None

    requested = request.args.get("qty", type=int)
    if requested is not None:
        data["requested"] = requested
        data["available"] = stock_ledger.is_available(branch_id, product_id, requested)
    return jsonify(data), 200


@stock_bp.route("/adjust", methods=["POST"])
@require_actor
def adjust_stock():
    """
    Manual stock adjustment.

    Request body:
    {
        "branch_id": int,
        "product_id": int,
        "quantity": int (signed, non-zero; positive adds, negative removes),
        "notes": str (optional, max 500)
    }

    Returns:
        201: Movement recorded
        400: Invalid quantity / payload
        404: Branch or product not found
        409: Insufficient stock
    """
    data = request.get_json(silent=True) or {}

    try:
        if data.get("branch_id") is None or data.get("product_id") is None:
            raise ValidationError("branch_id and product_id are required")
        new_quantity, movement = stock_ledger.manual_adjust(
            data["branch_id"],
            data["product_id"],
            data.get("quantity"),
            notes=data.get("notes"),
            actor_id=g.actor_id,
        )
        return jsonify({"quantity": new_quantity, "movement": movement.to_dict()}), 201

    except InventoryError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Unexpected error adjusting stock")
        return jsonify({"error": "Unexpected error"}), 500


@stock_bp.route("/<int:branch_id>/<int:product_id>/min-stock", methods=["PUT"])
@require_actor
def update_min_stock(branch_id: int, product_id: int):
    """
    Request body: {"min_stock": int}
    """
    data = request.get_json(silent=True) or {}

    try:
        if data.get("min_stock") is None:
            raise ValidationError("min_stock is required")
        stock = stock_ledger.set_min_stock(branch_id, product_id, data["min_stock"])
        return jsonify(stock.to_dict()), 200

    except InventoryError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Unexpected error updating min stock")
        return jsonify({"error": "Unexpected error"}), 500


@stock_bp.route("/movements", methods=["GET"])
def list_movements():
    """
    Movement history, newest first.

    Query params: branch_id, product_id, direction (IN/OUT),
    reference_kind, start_date, end_date, limit (default 100, max 500)
    """
    try:
        movements = stock_ledger.list_movements(
            branch_id=request.args.get("branch_id", type=int),
            product_id=request.args.get("product_id", type=int),
            direction=request.args.get("direction"),
            reference_kind=request.args.get("reference_kind"),
            start_date=_parse_datetime_arg("start_date"),
            end_date=_parse_datetime_arg("end_date"),
            limit=min(request.args.get("limit", 100, type=int), 500),
        )
        return jsonify({"items": [m.to_dict() for m in movements]}), 200
    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code


@stock_bp.route("/verify", methods=["GET"])
def verify():
    """
    Replay the ledger and report inconsistent rows.

    Query params: branch_id, product_id, check_chain=true|false
    (default follows SALE_CANCELLATION_MODE).
    """
    check_chain = request.args.get("check_chain")
    issues = stock_ledger.verify_ledger(
        branch_id=request.args.get("branch_id", type=int),
        product_id=request.args.get("product_id", type=int),
        check_chain=None if check_chain is None else check_chain.lower() != "false",
    )
    return jsonify({"consistent": not issues, "issues": issues}), 200
