# Overview: The stock ledger. Owns BranchStock quantities and the append-only
# StockMovement log; every quantity change in the system goes through adjust().

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import case, func, or_, update

from ..errors import EntityNotFound, InsufficientStock, InvalidQuantity, ValidationError
from ..extensions import db
from ..models import (
    Branch,
    BranchStock,
    MovementDirection,
    Product,
    ReferenceKind,
    StockMovement,
)
from ..validation import coerce_int, optional_text, positive_quantity
from .concurrency import insert_if_absent, lock_for_update, run_in_transaction


def negative_stock_allowed() -> bool:
    return bool(current_app.config.get("ALLOW_NEGATIVE_STOCK", False))


def chain_check_default() -> bool:
    # Purged sale movements break before/after links of later movements.
    return current_app.config.get("SALE_CANCELLATION_MODE", "purge") != "purge"


def _default_min_stock() -> int:
    return int(current_app.config.get("DEFAULT_MIN_STOCK", 5))


def _coerce_direction(direction) -> MovementDirection:
    try:
        return MovementDirection(direction)
    except ValueError as exc:
        raise ValidationError(f"Invalid direction: {direction}") from exc


def _coerce_reference_kind(kind) -> ReferenceKind:
    try:
        return ReferenceKind(kind)
    except ValueError as exc:
        raise ValidationError(f"Invalid reference kind: {kind}") from exc


def require_branch(branch_id: int) -> Branch:
    branch = db.session.get(Branch, coerce_int(branch_id, "branch_id"))
    if branch is None:
        raise EntityNotFound(f"Branch {branch_id} not found", {"branch_id": branch_id})
    return branch


def require_product(product_id: int) -> Product:
    product = db.session.get(Product, coerce_int(product_id, "product_id"))
    if product is None:
        raise EntityNotFound(f"Product {product_id} not found", {"product_id": product_id})
    return product


def _ensure_stock_row(branch_id: int, product_id: int, min_stock: int | None) -> None:
    insert_if_absent(
        BranchStock,
        {
            "branch_id": branch_id,
            "product_id": product_id,
            "quantity": 0,
            "min_stock": _default_min_stock() if min_stock is None else min_stock,
        },
        ["branch_id", "product_id"],
    )


def _apply_delta(branch_id: int, product_id: int, delta: int, *, guard: int | None = None) -> int | None:
    """
    Atomically add delta to the row and read the new value back.

    With guard set, the UPDATE only matches while quantity >= guard; None is
    returned when it matched nothing.
    """
    stmt = update(BranchStock).where(
        BranchStock.branch_id == branch_id,
        BranchStock.product_id == product_id,
    )
    if guard is not None:
        stmt = stmt.where(BranchStock.quantity >= guard)
    stmt = stmt.values(quantity=BranchStock.quantity + delta).execution_options(
        synchronize_session=False
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    return (
        db.session.query(BranchStock.quantity)
        .filter_by(branch_id=branch_id, product_id=product_id)
        .scalar()
    )


def adjust(
    branch_id: int,
    product_id: int,
    quantity: int,
    direction,
    reference_kind,
    reference_id: int | None = None,
    notes: str | None = None,
    actor_id: int | None = None,
    *,
    min_stock: int | None = None,
    commit: bool = True,
) -> tuple[int, StockMovement]:
    """
    Apply one signed quantity change and record it as a movement.

    Returns (new_quantity, movement). The BranchStock row is created on the
    first movement with quantity 0. OUT movements fail with InsufficientStock
    when they would go below zero, unless ALLOW_NEGATIVE_STOCK is on.

    Pass commit=False to compose the change into the caller's transaction.
    """
    branch_id = coerce_int(branch_id, "branch_id")
    product_id = coerce_int(product_id, "product_id")
    qty = positive_quantity(quantity)
    direction = _coerce_direction(direction)
    reference_kind = _coerce_reference_kind(reference_kind)

    def _op() -> tuple[int, StockMovement]:
        require_branch(branch_id)
        require_product(product_id)
        _ensure_stock_row(branch_id, product_id, min_stock)

        delta = qty * direction.sign
        guard = qty if direction is MovementDirection.OUT and not negative_stock_allowed() else None
        stock_after = _apply_delta(branch_id, product_id, delta, guard=guard)
        if stock_after is None:
            available = current_quantity(branch_id, product_id)
            raise InsufficientStock(
                f"Insufficient stock for product {product_id} at branch {branch_id}: "
                f"requested {qty}, available {available}",
                {
                    "branch_id": branch_id,
                    "product_id": product_id,
                    "requested": qty,
                    "available": available,
                },
            )

        movement = StockMovement(
            branch_id=branch_id,
            product_id=product_id,
            direction=direction.value,
            quantity=qty,
            stock_before=stock_after - delta,
            stock_after=stock_after,
            reference_kind=reference_kind.value,
            reference_id=reference_id,
            notes=notes,
            created_by=actor_id,
        )
        db.session.add(movement)
        db.session.flush()
        current_app.logger.debug(
            "stock.%s branch=%s product=%s qty=%s %s->%s (%s %s)",
            direction.value.lower(), branch_id, product_id, qty,
            movement.stock_before, stock_after, reference_kind.value, reference_id,
        )
        return stock_after, movement

    return run_in_transaction(_op, commit=commit)


def manual_adjust(
    branch_id: int,
    product_id: int,
    signed_quantity,
    notes: str | None = None,
    actor_id: int | None = None,
) -> tuple[int, StockMovement]:
    """Stock correction entered by hand; the sign selects IN or OUT."""
    try:
        value = coerce_int(signed_quantity, "quantity")
    except ValidationError as exc:
        raise InvalidQuantity(str(exc)) from exc
    if value == 0:
        raise InvalidQuantity("Adjustment quantity cannot be zero")
    notes = optional_text(notes, "notes", 500)

    direction = MovementDirection.IN if value > 0 else MovementDirection.OUT
    return adjust(
        branch_id,
        product_id,
        abs(value),
        direction,
        ReferenceKind.ADJUSTMENT,
        None,
        notes,
        actor_id,
    )


def initialize_product_stock(
    product_id: int,
    initial_quantity: int = 0,
    min_stock: int | None = None,
    actor_id: int | None = None,
) -> list[BranchStock]:
    """
    Create the product's stock row in every active branch that lacks one.

    A positive initial quantity is booked as an INITIAL movement so the
    ledger still replays to the stored quantity. Branches that already
    stock the product are left untouched.
    """
    initial_quantity = coerce_int(initial_quantity, "initial_quantity")
    if initial_quantity < 0:
        raise InvalidQuantity("initial_quantity cannot be negative")

    def _op() -> list[int]:
        require_product(product_id)
        branch_ids = [
            row.id
            for row in db.session.query(Branch.id).filter(Branch.is_active.is_(True)).order_by(Branch.id)
        ]
        existing = {
            row.branch_id
            for row in db.session.query(BranchStock.branch_id).filter(BranchStock.product_id == product_id)
        }
        created = []
        for branch_id in branch_ids:
            if branch_id in existing:
                continue
            _ensure_stock_row(branch_id, product_id, min_stock)
            if initial_quantity > 0:
                adjust(
                    branch_id,
                    product_id,
                    initial_quantity,
                    MovementDirection.IN,
                    ReferenceKind.INITIAL,
                    None,
                    "Initial stock",
                    actor_id,
                    commit=False,
                )
            created.append(branch_id)
        return created

    created_branch_ids = run_in_transaction(_op)
    if not created_branch_ids:
        return []
    return (
        db.session.query(BranchStock)
        .filter(BranchStock.product_id == product_id, BranchStock.branch_id.in_(created_branch_ids))
        .order_by(BranchStock.branch_id)
        .all()
    )


def set_min_stock(branch_id: int, product_id: int, min_stock) -> BranchStock:
    value = coerce_int(min_stock, "min_stock")
    if value < 0:
        raise ValidationError("min_stock cannot be negative")

    def _op() -> BranchStock:
        require_branch(branch_id)
        require_product(product_id)
        _ensure_stock_row(branch_id, product_id, value)
        stock = lock_for_update(
            db.session.query(BranchStock).filter_by(branch_id=branch_id, product_id=product_id)
        ).one()
        stock.min_stock = value
        return stock

    return run_in_transaction(_op)


def purge_reference(reference_kind, reference_id: int, *, commit: bool = True) -> int:
    """
    Remove every movement booked against a reference and undo its effect.

    Each movement's inverse delta is applied to BranchStock atomically before
    the movement row is deleted, so replaying the remaining movements still
    yields the stored quantity. Returns the number of movements removed.
    """
    reference_kind = _coerce_reference_kind(reference_kind)

    def _op() -> int:
        movements = (
            lock_for_update(
                db.session.query(StockMovement).filter_by(
                    reference_kind=reference_kind.value,
                    reference_id=reference_id,
                )
            )
            .order_by(StockMovement.id)
            .all()
        )
        for movement in movements:
            delta = -movement.signed_quantity
            guard = -delta if delta < 0 and not negative_stock_allowed() else None
            if _apply_delta(movement.branch_id, movement.product_id, delta, guard=guard) is None:
                raise InsufficientStock(
                    f"Cannot reverse movement {movement.id}: stock already consumed",
                    {
                        "branch_id": movement.branch_id,
                        "product_id": movement.product_id,
                        "required": -delta,
                        "available": current_quantity(movement.branch_id, movement.product_id),
                    },
                )
            db.session.delete(movement)
        return len(movements)

    return run_in_transaction(_op, commit=commit)


def get_stock(branch_id: int, product_id: int) -> BranchStock | None:
    return (
        db.session.query(BranchStock)
        .filter_by(branch_id=branch_id, product_id=product_id)
        .first()
    )


def current_quantity(branch_id: int, product_id: int) -> int:
    """On-hand quantity; 0 when the product was never stocked at the branch."""
    value = (
        db.session.query(BranchStock.quantity)
        .filter_by(branch_id=branch_id, product_id=product_id)
        .scalar()
    )
    return value or 0


def is_available(branch_id: int, product_id: int, requested_qty: int) -> bool:
    if negative_stock_allowed():
        return True
    return current_quantity(branch_id, product_id) >= requested_qty


def list_stock(
    *,
    branch_id: int | None = None,
    search: str | None = None,
    low_stock: bool = False,
    limit: int | None = None,
) -> list[BranchStock]:
    query = db.session.query(BranchStock).join(Product, Product.id == BranchStock.product_id)
    if branch_id is not None:
        query = query.filter(BranchStock.branch_id == branch_id)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))
    if low_stock:
        query = query.filter(BranchStock.quantity <= BranchStock.min_stock)
    query = query.order_by(BranchStock.branch_id, Product.name)
    if limit:
        query = query.limit(limit)
    return query.all()


def low_stock(branch_id: int | None = None) -> list[BranchStock]:
    """Rows at or below their min_stock threshold."""
    return list_stock(branch_id=branch_id, low_stock=True)


def list_movements(
    *,
    branch_id: int | None = None,
    product_id: int | None = None,
    direction=None,
    reference_kind=None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    limit: int = 100,
) -> list[StockMovement]:
    query = db.session.query(StockMovement)
    if branch_id is not None:
        query = query.filter(StockMovement.branch_id == branch_id)
    if product_id is not None:
        query = query.filter(StockMovement.product_id == product_id)
    if direction:
        query = query.filter(StockMovement.direction == _coerce_direction(direction).value)
    if reference_kind:
        query = query.filter(StockMovement.reference_kind == _coerce_reference_kind(reference_kind).value)
    if start_date:
        query = query.filter(StockMovement.created_at >= start_date)
    if end_date:
        query = query.filter(StockMovement.created_at <= end_date)
    return query.order_by(StockMovement.id.desc()).limit(limit).all()


def movements_for_reference(reference_kind, reference_id: int) -> list[StockMovement]:
    return (
        db.session.query(StockMovement)
        .filter_by(reference_kind=_coerce_reference_kind(reference_kind).value, reference_id=reference_id)
        .order_by(StockMovement.id)
        .all()
    )


def replay_quantity(branch_id: int, product_id: int) -> int:
    """Sum of IN minus OUT over every movement of the pair."""
    signed = case(
        (StockMovement.direction == MovementDirection.IN.value, StockMovement.quantity),
        else_=-StockMovement.quantity,
    )
    total = (
        db.session.query(func.coalesce(func.sum(signed), 0))
        .filter(StockMovement.branch_id == branch_id, StockMovement.product_id == product_id)
        .scalar()
    )
    return int(total or 0)


def verify_ledger(
    *,
    branch_id: int | None = None,
    product_id: int | None = None,
    check_chain: bool | None = None,
) -> list[dict]:
    """
    Audit stock rows against their movement history.

    Reports replay mismatches, movements whose snapshots do not add up and,
    with check_chain, consecutive movements whose snapshots do not link.
    check_chain defaults to off under SALE_CANCELLATION_MODE=purge, where a
    cancelled sale leaves a gap in the chain of later movements.
    An empty list means the ledger is consistent.
    """
    if check_chain is None:
        check_chain = chain_check_default()
    query = db.session.query(BranchStock)
    if branch_id is not None:
        query = query.filter(BranchStock.branch_id == branch_id)
    if product_id is not None:
        query = query.filter(BranchStock.product_id == product_id)

    issues: list[dict] = []
    for stock in query.order_by(BranchStock.branch_id, BranchStock.product_id):
        movements = (
            db.session.query(StockMovement)
            .filter_by(branch_id=stock.branch_id, product_id=stock.product_id)
            .order_by(StockMovement.id)
            .all()
        )
        key = {"branch_id": stock.branch_id, "product_id": stock.product_id}

        replayed = sum(m.signed_quantity for m in movements)
        if replayed != stock.quantity:
            issues.append({**key, "problem": "replay_mismatch", "quantity": stock.quantity, "replayed": replayed})

        previous = None
        for movement in movements:
            if movement.stock_before + movement.signed_quantity != movement.stock_after:
                issues.append({**key, "problem": "arithmetic", "movement_id": movement.id})
            if check_chain and previous is not None and previous.stock_after != movement.stock_before:
                issues.append({
                    **key,
                    "problem": "chain_break",
                    "movement_id": movement.id,
                    "previous_movement_id": previous.id,
                })
            previous = movement

    return issues
