# Overview: Minimal branch/product registration used by the CLI and tests.

from __future__ import annotations

from ..errors import ValidationError
from ..extensions import db
from ..models import Branch, Product
from ..validation import money_cents, optional_text
from .concurrency import run_in_transaction


def create_branch(*, name: str, code: str, address: str | None = None, phone: str | None = None) -> Branch:
    name = optional_text(name, "name", 128)
    code = optional_text(code, "code", 16)
    if not name or not code:
        raise ValidationError("name and code are required")
    code = code.upper()
    if "/" in code:
        raise ValidationError("Branch code cannot contain '/'")

    def _op() -> Branch:
        if db.session.query(Branch.id).filter_by(code=code).first() is not None:
            raise ValidationError(f"Branch code {code} already exists", {"code": code})
        branch = Branch(
            name=name,
            code=code,
            address=optional_text(address, "address", 255),
            phone=optional_text(phone, "phone", 32),
            is_active=True,
        )
        db.session.add(branch)
        return branch

    return run_in_transaction(_op)


def create_product(*, sku: str, name: str, price_cents=0, **extra) -> Product:
    sku = optional_text(sku, "sku", 64)
    name = optional_text(name, "name", 255)
    if not sku or not name:
        raise ValidationError("sku and name are required")

    def _op() -> Product:
        if db.session.query(Product.id).filter_by(sku=sku).first() is not None:
            raise ValidationError(f"SKU {sku} already exists", {"sku": sku})
        product = Product(
            sku=sku,
            name=name,
            price_cents=money_cents(price_cents, "price_cents"),
            description=optional_text(extra.get("description"), "description", 2000),
            color=optional_text(extra.get("color"), "color", 64),
            size=optional_text(extra.get("size"), "size", 32),
            is_active=True,
        )
        db.session.add(product)
        return product

    return run_in_transaction(_op)


def list_branches(*, include_inactive: bool = False) -> list[Branch]:
    query = db.session.query(Branch)
    if not include_inactive:
        query = query.filter(Branch.is_active.is_(True))
    return query.order_by(Branch.code).all()
