"""Engine subpackage - core pricing and tax computation."""
from .pricing_engine import PricingEngine
from .tax_calculator import TaxCalculator
from .models import PriceRequest, PriceBreakdown
from .tax_models import TaxContext, TaxCalculation

__all__ = [
    'PricingEngine', 'PriceRequest', 'PriceBreakdown',
    'TaxCalculator', 'TaxContext', 'TaxCalculation',
]
