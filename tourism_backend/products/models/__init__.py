from .product import Product
from .stock_reservation import StockReservation

__all__ = ["Product", "StockReservation"]
