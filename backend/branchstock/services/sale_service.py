# Overview: Sale creation and same-day cancellation on top of the stock ledger.

from __future__ import annotations

from datetime import date

from flask import current_app

from ..errors import EntityNotFound, InsufficientStock, SaleNotCancelable, ValidationError
from ..extensions import db
from ..models import MovementDirection, PaymentMethod, ReferenceKind, Sale, SaleItem
from ..time_utils import business_today
from ..validation import coerce_int, money_cents, optional_text, positive_quantity
from . import document_service, stock_ledger
from .concurrency import lock_for_update, run_in_transaction


CANCEL_PURGE = "purge"
CANCEL_COMPENSATE = "compensate"


def _today() -> date:
    return business_today(current_app.config.get("BUSINESS_TIMEZONE", "UTC"))


def _normalize_items(items) -> list[dict]:
    if not items:
        raise ValidationError("Sale must contain at least one item")

    normalized = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict) or raw.get("product_id") is None:
            raise ValidationError(f"items[{index}].product_id is required")
        product_id = coerce_int(raw["product_id"], f"items[{index}].product_id")
        product = stock_ledger.require_product(product_id)
        quantity = positive_quantity(raw.get("quantity"), f"items[{index}].quantity")

        unit_price = raw.get("unit_price_cents")
        if unit_price is None:
            unit_price = product.price_cents
        unit_price = money_cents(unit_price, f"items[{index}].unit_price_cents")

        normalized.append({
            "product_id": product_id,
            "quantity": quantity,
            "unit_price_cents": unit_price,
            "subtotal_cents": quantity * unit_price,
        })
    return normalized


def _validate_availability(branch_id: int, items: list[dict]) -> None:
    """Check every product up front; repeated products are summed."""
    product_totals: dict[int, int] = {}
    for item in items:
        product_totals[item["product_id"]] = product_totals.get(item["product_id"], 0) + item["quantity"]

    insufficient = []
    for product_id, requested in product_totals.items():
        if not stock_ledger.is_available(branch_id, product_id, requested):
            insufficient.append({
                "product_id": product_id,
                "requested": requested,
                "available": stock_ledger.current_quantity(branch_id, product_id),
            })

    if insufficient:
        first = insufficient[0]
        product = stock_ledger.require_product(first["product_id"])
        raise InsufficientStock(
            f"Insufficient stock for {product.name}: requested {first['requested']}, "
            f"available {first['available']}",
            {"branch_id": branch_id, "items": insufficient},
        )


def create_sale(
    *,
    branch_id: int,
    cashier_id: int,
    items,
    customer_name: str | None = None,
    customer_phone: str | None = None,
    discount_cents=0,
    payment_method: str = PaymentMethod.CASH.value,
    notes: str | None = None,
) -> Sale:
    """
    Record a sale and deduct its quantities from the branch.

    Availability is checked for every item before anything is written.
    Header, items, invoice number and OUT movements then commit together;
    a concurrent sale that empties the shelf in between makes the guarded
    ledger update fail and the whole sale rolls back.
    """
    branch_id = stock_ledger.require_branch(branch_id).id
    normalized = _normalize_items(items)
    discount = money_cents(discount_cents or 0, "discount_cents")
    try:
        method = PaymentMethod(str(payment_method).upper())
    except ValueError as exc:
        raise ValidationError(
            f"payment_method must be one of {', '.join(m.value for m in PaymentMethod)}"
        ) from exc

    _validate_availability(branch_id, normalized)

    subtotal = sum(item["subtotal_cents"] for item in normalized)

    def _op() -> Sale:
        sale = Sale(
            invoice_number=document_service.next_document_number(
                branch_id=branch_id,
                document_type=document_service.INVOICE,
            ),
            branch_id=branch_id,
            user_id=cashier_id,
            sale_date=_today(),
            customer_name=optional_text(customer_name, "customer_name", 128),
            customer_phone=optional_text(customer_phone, "customer_phone", 32),
            subtotal_cents=subtotal,
            discount_cents=discount,
            grand_total_cents=subtotal - discount,
            payment_method=method.value,
            notes=optional_text(notes, "notes"),
        )
        db.session.add(sale)
        db.session.flush()

        for item in normalized:
            db.session.add(SaleItem(sale_id=sale.id, **item))
            stock_ledger.adjust(
                branch_id,
                item["product_id"],
                item["quantity"],
                MovementDirection.OUT,
                ReferenceKind.SALE,
                sale.id,
                f"Sale {sale.invoice_number}",
                cashier_id,
                commit=False,
            )
        return sale

    sale = run_in_transaction(_op)
    current_app.logger.info(
        "sale.created %s branch=%s total=%s by actor %s",
        sale.invoice_number, branch_id, sale.grand_total_cents, cashier_id,
    )
    return sale


def cancel_sale(*, sale_id: int, actor_id: int | None = None) -> None:
    """
    Delete a sale made today and put its quantities back.

    SALE_CANCELLATION_MODE selects how the stock comes back:
    - "purge": the sale's movements are removed and their effect undone
    - "compensate": movements are kept and an IN adjustment is appended
    """
    mode = current_app.config.get("SALE_CANCELLATION_MODE", CANCEL_PURGE)
    if mode not in (CANCEL_PURGE, CANCEL_COMPENSATE):
        raise ValidationError(f"Unknown SALE_CANCELLATION_MODE: {mode}")

    def _op() -> str:
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if sale is None:
            raise EntityNotFound(f"Sale {sale_id} not found", {"sale_id": sale_id})

        today = _today()
        if sale.sale_date != today:
            raise SaleNotCancelable(
                "Only sales made today can be cancelled",
                {"sale_id": sale.id, "sale_date": sale.sale_date.isoformat(), "today": today.isoformat()},
            )

        if mode == CANCEL_PURGE:
            stock_ledger.purge_reference(ReferenceKind.SALE, sale.id, commit=False)
        else:
            for item in sale.items:
                stock_ledger.adjust(
                    sale.branch_id,
                    item.product_id,
                    item.quantity,
                    MovementDirection.IN,
                    ReferenceKind.ADJUSTMENT,
                    None,
                    f"Cancellation of {sale.invoice_number}",
                    actor_id,
                    commit=False,
                )

        invoice_number = sale.invoice_number
        db.session.delete(sale)
        return invoice_number

    invoice_number = run_in_transaction(_op)
    current_app.logger.info("sale.cancelled %s (%s) by actor %s", invoice_number, mode, actor_id)


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise EntityNotFound(f"Sale {sale_id} not found", {"sale_id": sale_id})
    return sale


def list_sales(
    *,
    branch_id: int | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    limit: int = 100,
) -> list[Sale]:
    query = db.session.query(Sale)
    if branch_id is not None:
        query = query.filter(Sale.branch_id == branch_id)
    if start_date:
        query = query.filter(Sale.sale_date >= start_date)
    if end_date:
        query = query.filter(Sale.sale_date <= end_date)
    return query.order_by(Sale.id.desc()).limit(limit).all()
