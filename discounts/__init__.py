"""Discount stacking: classification, conflict resolution, stacking, compliance.

Pieces and how they fit:
- Classifier: type, stacking mode, strategy and priority from the data bag
- Conflict resolver: priority-sorted fold of precedence rules per type group
- Stacking engine: per-group strategies chaining the remaining amount
- Compliance gate: MAP, jurisdiction and double-discount checks as data
- Audit recorder: append-only trail with retry and dead-letter capture
- DiscountStackingService: the entry point tying them together
"""

from discounts.models import Cart, Discount, DiscountApplication, DiscountStackingResult
from discounts.service import DiscountStackingService

__all__ = [
    "Cart",
    "Discount",
    "DiscountApplication",
    "DiscountStackingResult",
    "DiscountStackingService",
]
