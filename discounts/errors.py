"""Caller-contract errors.

Business outcomes (no discount applies, amount is zero, region mismatch) are
returned as data. These exceptions are for programmer errors: a missing cart,
a collection holding something that is not a Discount, a data bag whose values
cannot be priced. All subclass ValueError.
"""


class DiscountError(ValueError):
    """Base class for discount-service contract violations."""


class InvalidDiscountError(DiscountError):
    """A discount (or its data bag) is malformed."""


class InvalidCartError(DiscountError):
    """The cart is missing or not a Cart."""


class InvalidAmountError(DiscountError):
    """A monetary amount is negative or not an integer of minor units."""


class AuditWriteError(RuntimeError):
    """An audit row could not be persisted after retries.

    Every failed payload has already been captured in the dead-letter queue
    when this is raised; ``letter_ids`` points at them. ``entries`` holds the
    rows of the same batch that were written.
    """

    def __init__(
        self,
        message: str,
        letter_ids: list[str] | None = None,
        entries: list[dict] | None = None,
    ):
        super().__init__(message)
        self.letter_ids = list(letter_ids or [])
        self.entries = list(entries or [])

    @property
    def letter_id(self) -> str | None:
        return self.letter_ids[0] if self.letter_ids else None
