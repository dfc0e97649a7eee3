from .exceptions import InsufficientStockError, StockLedgerError

__all__ = [
    "InsufficientStockError",
    "StockLedgerError",
]
