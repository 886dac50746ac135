"""
Pricing and conversion exceptions.

All of these are locally recoverable: callers turn them into validation
messages or navigation, never into a crash.
"""

from typing import Optional


class PricingError(Exception):
    """Base exception for the pricing engine."""

    code = "pricing_error"


class ConversionError(PricingError):
    """Quote could not be turned into a sale."""

    code = "conversion_error"


class AlreadyConvertedError(ConversionError):
    """Quote is already linked to a sale. Non-fatal: go to the existing sale."""

    code = "already_converted"

    def __init__(self, quote_id: Optional[str], sale_id: str):
        self.quote_id = quote_id
        self.sale_id = sale_id
        super().__init__(f"Quote {quote_id} was already converted to sale {sale_id}")


class IncompleteSegmentsError(ConversionError):
    """No segment has both origin and destination."""

    code = "incomplete_segments"

    def __init__(self, message: str = "Informe origem e destino de pelo menos um trecho"):
        super().__init__(message)


class ZeroOrNegativePriceError(ConversionError):
    """Computed final price is zero or negative."""

    code = "zero_or_negative_price"

    def __init__(self, final_price: float):
        self.final_price = final_price
        super().__init__(f"Final price must be positive, got {final_price:.2f}")


class InvalidInterestConfigError(PricingError):
    """Interest configuration rejected before storage."""

    code = "invalid_interest_config"
