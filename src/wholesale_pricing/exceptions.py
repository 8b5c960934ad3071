"""Exceptions raised by the quote lifecycle and the API boundary."""


class PricingError(Exception):
    """Base exception for pricing and quote errors."""
    code = "pricing_error"


class NotFoundError(PricingError):
    """Raised when a referenced document does not exist."""
    code = "not_found"


class ProductNotFoundError(NotFoundError):
    """Raised when a quote request references an unknown product."""
    code = "product_not_found"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product {product_id} not found")


class QuoteNotFoundError(NotFoundError):
    """Raised when a lifecycle operation targets an unknown quote."""
    code = "quote_not_found"

    def __init__(self, quote_id: str):
        self.quote_id = quote_id
        super().__init__(f"Quote {quote_id} not found")


class TemplateNotFoundError(NotFoundError):
    code = "template_not_found"

    def __init__(self, template_id: str):
        self.template_id = template_id
        super().__init__(f"Template {template_id} not found")


class InvalidStateError(PricingError):
    """Raised when a quote is not in a state that allows the operation."""
    code = "invalid_state"


class ValidationError(PricingError):
    """Raised at the API boundary for missing notes or reasons."""
    code = "validation_error"


class ConcurrencyConflictError(PricingError):
    """Raised when a quote was modified between read and write."""
    code = "concurrency_conflict"

    def __init__(self, quote_id: str, expected: int, actual: int):
        self.quote_id = quote_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Quote {quote_id} changed concurrently "
            f"(expected row version {expected}, found {actual})"
        )
