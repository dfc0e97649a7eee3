from .business import Business
from .cancellation_policy import CancellationPolicy
from .discount import Discount

__all__ = ["Business", "CancellationPolicy", "Discount"]
