"""Engine subpackage - customer price calculation and price-list matching."""
from .pricing_engine import PricingEngine, calculate_customer_price
from .models import PriceCalculationInput, PriceCalculation, PriceList, Product

__all__ = [
    'PricingEngine',
    'calculate_customer_price',
    'PriceCalculationInput',
    'PriceCalculation',
    'PriceList',
    'Product',
]
