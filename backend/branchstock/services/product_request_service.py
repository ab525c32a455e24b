# Overview: Branch requests for new catalog products (PENDING -> APPROVED | REJECTED).

from __future__ import annotations

from flask import current_app

from ..errors import EntityNotFound, InvalidTransition, ValidationError
from ..extensions import db
from ..models import Product, ProductRequest, RequestStatus
from ..time_utils import utcnow
from ..validation import money_cents, optional_text
from . import stock_ledger
from .concurrency import lock_for_update, run_in_transaction


def _load_for_update(request_id: int) -> ProductRequest:
    req = lock_for_update(db.session.query(ProductRequest).filter_by(id=request_id)).first()
    if req is None:
        raise EntityNotFound(f"Product request {request_id} not found", {"request_id": request_id})
    return req


def _require_pending(req: ProductRequest, operation: str) -> None:
    if req.status != RequestStatus.PENDING.value:
        raise InvalidTransition(
            f"Cannot {operation} product request {req.id} in status {req.status}",
            {"request_id": req.id, "operation": operation, "status": req.status, "allowed_from": ["PENDING"]},
        )


def create_request(
    *,
    branch_id: int,
    actor_id: int,
    sku: str,
    name: str,
    price_cents=0,
    color: str | None = None,
    size: str | None = None,
    description: str | None = None,
    request_notes: str | None = None,
) -> ProductRequest:
    branch_id = stock_ledger.require_branch(branch_id).id
    sku = optional_text(sku, "sku", 64)
    name = optional_text(name, "name", 255)
    if not sku or not name:
        raise ValidationError("sku and name are required")

    def _op() -> ProductRequest:
        req = ProductRequest(
            branch_id=branch_id,
            requested_by=actor_id,
            sku=sku,
            name=name,
            price_cents=money_cents(price_cents, "price_cents"),
            color=optional_text(color, "color", 64),
            size=optional_text(size, "size", 32),
            description=optional_text(description, "description", 2000),
            request_notes=optional_text(request_notes, "request_notes", 2000),
            status=RequestStatus.PENDING.value,
        )
        db.session.add(req)
        return req

    req = run_in_transaction(_op)
    current_app.logger.info("product_request.created %s (%s) by actor %s", req.id, sku, actor_id)
    return req


def approve_request(*, request_id: int, actor_id: int) -> ProductRequest:
    """Approve a pending request and create the catalog product it describes."""
    def _op() -> ProductRequest:
        req = _load_for_update(request_id)
        _require_pending(req, "approve")

        if db.session.query(Product.id).filter_by(sku=req.sku).first() is not None:
            raise ValidationError(f"SKU {req.sku} already exists in the catalog", {"sku": req.sku})

        product = Product(
            sku=req.sku,
            name=req.name,
            color=req.color,
            size=req.size,
            price_cents=req.price_cents,
            description=req.description,
            is_active=True,
        )
        db.session.add(product)
        db.session.flush()

        req.status = RequestStatus.APPROVED.value
        req.approved_by = actor_id
        req.approved_at = utcnow()
        req.product_id = product.id
        return req

    req = run_in_transaction(_op)
    current_app.logger.info("product_request.approved %s -> product %s", req.id, req.product_id)
    return req


def reject_request(*, request_id: int, reason: str, actor_id: int) -> ProductRequest:
    reason = optional_text(reason, "reason", 2000)
    if not reason:
        raise ValidationError("A rejection reason is required")

    def _op() -> ProductRequest:
        req = _load_for_update(request_id)
        _require_pending(req, "reject")
        req.status = RequestStatus.REJECTED.value
        req.approved_by = actor_id
        req.approved_at = utcnow()
        req.rejection_reason = reason
        return req

    req = run_in_transaction(_op)
    current_app.logger.info("product_request.rejected %s by actor %s", req.id, actor_id)
    return req


def get_request(request_id: int) -> ProductRequest:
    req = db.session.get(ProductRequest, request_id)
    if req is None:
        raise EntityNotFound(f"Product request {request_id} not found", {"request_id": request_id})
    return req


def list_requests(*, status: str | None = None, branch_id: int | None = None, limit: int = 100) -> list[ProductRequest]:
    query = db.session.query(ProductRequest)
    if status:
        try:
            query = query.filter(ProductRequest.status == RequestStatus(status.upper()).value)
        except ValueError as exc:
            raise ValidationError(f"Invalid request status: {status}") from exc
    if branch_id is not None:
        query = query.filter(ProductRequest.branch_id == branch_id)
    return query.order_by(ProductRequest.id.desc()).limit(limit).all()
