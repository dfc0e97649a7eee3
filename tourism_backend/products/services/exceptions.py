# products/services/exceptions.py

"""
Stock ledger domain errors.
"""


class StockLedgerError(Exception):
    pass


class InsufficientStockError(StockLedgerError):
    def __init__(self, *, product_id, requested: int, available: int):
        self.product_id = product_id
        self.requested = int(requested)
        self.available = int(available)
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"requested {self.requested}, available {self.available}"
        )
