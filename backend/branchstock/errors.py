# Overview: Exception hierarchy shared by services and routes.

from __future__ import annotations


class InventoryError(Exception):
    """Base for every recoverable inventory/workflow failure."""

    status_code = 400
    code = "INVENTORY_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": str(self), "code": self.code, "details": self.details}


class ValidationError(InventoryError):
    """400-level input problem."""
    code = "VALIDATION_ERROR"


class EntityNotFound(InventoryError):
    status_code = 404
    code = "NOT_FOUND"


class InvalidQuantity(InventoryError):
    code = "INVALID_QUANTITY"


class InsufficientStock(InventoryError):
    status_code = 409
    code = "INSUFFICIENT_STOCK"


class InsufficientSourceStock(InsufficientStock):
    """Transfer send would take the source branch below zero."""
    code = "INSUFFICIENT_SOURCE_STOCK"


class InvalidTransition(InventoryError):
    status_code = 409
    code = "INVALID_TRANSITION"


class SaleNotCancelable(InventoryError):
    status_code = 409
    code = "SALE_NOT_CANCELABLE"


class TransactionConflict(InventoryError):
    """Lock or serialization failure that survived every retry."""
    status_code = 409
    code = "TRANSACTION_CONFLICT"
