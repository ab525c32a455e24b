from __future__ import annotations

import enum


class MovementDirection(str, enum.Enum):
    IN = "IN"
    OUT = "OUT"

    @property
    def sign(self) -> int:
        return 1 if self is MovementDirection.IN else -1


class ReferenceKind(str, enum.Enum):
    SALE = "SALE"
    TRANSFER_OUT = "TRANSFER_OUT"
    TRANSFER_IN = "TRANSFER_IN"
    ADJUSTMENT = "ADJUSTMENT"
    INITIAL = "INITIAL"


class TransferStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SENT = "SENT"
    RECEIVED = "RECEIVED"


class RequestStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    TRANSFER = "TRANSFER"
    DEBIT = "DEBIT"
