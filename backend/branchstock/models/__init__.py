from .enums import MovementDirection, ReferenceKind, TransferStatus, RequestStatus, PaymentMethod
from .catalog import Branch, Product
from .inventory import BranchStock, StockMovement
from .sales import Sale, SaleItem
from .documents import Transfer, TransferItem, DocumentSequence
from .requests import ProductRequest

__all__ = [
    'MovementDirection', 'ReferenceKind', 'TransferStatus', 'RequestStatus', 'PaymentMethod',
    'Branch', 'Product',
    'BranchStock', 'StockMovement',
    'Sale', 'SaleItem',
    'Transfer', 'TransferItem', 'DocumentSequence',
    'ProductRequest',
]
