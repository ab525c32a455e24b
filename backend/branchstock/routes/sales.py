# backend/branchstock/routes/sales.py
"""
Sales API routes.
"""
from datetime import date

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor
from ..errors import InventoryError, ValidationError
from ..extensions import db
from ..services import sale_service


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _parse_date_arg(name: str):
    value = request.args.get(name)
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(f"{name} must be YYYY-MM-DD") from exc


@sales_bp.route("", methods=["POST"])
@require_actor
def create_sale():
    """
    Create a sale and deduct its stock.

    Request body:
    {
        "branch_id": int,
        "items": [{"product_id": int, "quantity": int, "unit_price_cents": int (optional)}],
        "discount_cents": int (optional),
        "payment_method": "CASH" | "TRANSFER" | "DEBIT",
        "customer_name": str (optional),
        "customer_phone": str (optional),
        "notes": str (optional)
    }

    Returns:
        201: Sale created
        400: Invalid request
        404: Branch or product not found
        409: Insufficient stock
    """
    data = request.get_json(silent=True) or {}

    try:
        if data.get("branch_id") is None:
            raise ValidationError("branch_id is required")
        sale = sale_service.create_sale(
            branch_id=data["branch_id"],
            cashier_id=g.actor_id,
            items=data.get("items"),
            customer_name=data.get("customer_name"),
            customer_phone=data.get("customer_phone"),
            discount_cents=data.get("discount_cents", 0),
            payment_method=data.get("payment_method", "CASH"),
            notes=data.get("notes"),
        )
        return jsonify(sale.to_dict(include_items=True)), 201

    except InventoryError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Unexpected error creating sale")
        return jsonify({"error": "Unexpected error"}), 500


@sales_bp.route("", methods=["GET"])
def list_sales():
    """Query params: branch_id, start_date, end_date (YYYY-MM-DD), limit"""
    try:
        sales = sale_service.list_sales(
            branch_id=request.args.get("branch_id", type=int),
            start_date=_parse_date_arg("start_date"),
            end_date=_parse_date_arg("end_date"),
            limit=min(request.args.get("limit", 100, type=int), 500),
        )
        return jsonify({"items": [s.to_dict() for s in sales]}), 200
    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code


@sales_bp.route("/<int:sale_id>", methods=["GET"])
def get_sale(sale_id: int):
    try:
        sale = sale_service.get_sale(sale_id)
        return jsonify(sale.to_dict(include_items=True)), 200
    except InventoryError as e:
        return jsonify(e.to_dict()), e.status_code


@sales_bp.route("/<int:sale_id>", methods=["DELETE"])
@require_actor
def cancel_sale(sale_id: int):
    """
    Cancel a sale made today; stock is restored.

    Returns:
        200: Sale cancelled
        404: Sale not found
        409: Sale not from today
    """
    try:
        sale_service.cancel_sale(sale_id=sale_id, actor_id=g.actor_id)
        return jsonify({"status": "cancelled", "sale_id": sale_id}), 200

    except InventoryError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Unexpected error cancelling sale")
        return jsonify({"error": "Unexpected error"}), 500
