"""Exceptions raised by the pricing engine, tax calculator and stores."""


class PayrollPricingError(Exception):
    """Base class for errors raised by this package."""


class PricingError(PayrollPricingError):
    """Invalid input to a price calculation (negative counts, bad option)."""


class NotFoundError(PayrollPricingError):
    """A tier, feature, merchant row or jurisdiction does not exist."""


class TaxConfigurationError(PayrollPricingError):
    """Tax tables cannot be evaluated as configured."""
