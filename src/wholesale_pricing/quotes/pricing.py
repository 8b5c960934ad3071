"""
Quote-level pricing aggregation.

Tax is a flat rate on the discounted subtotal. Shipping is free above the
free-shipping threshold, otherwise a flat fee.
"""
from dataclasses import replace
from typing import Iterable, Optional

from ..config.settings import Settings, get_settings
from ..engine.pricing_engine import MINIMUM_UNIT_PRICE, normalize_quantity
from .models import QuoteItem, QuotePricing


def normalize_item(item: QuoteItem, minimum_unit_price: float = MINIMUM_UNIT_PRICE) -> QuoteItem:
    """Return the item with a floored unit price and a re-derived total."""
    quantity = normalize_quantity(item.quantity)
    unit_price = max(item.unit_price, minimum_unit_price)
    return replace(item, quantity=quantity, unit_price=unit_price, total=unit_price * quantity)


def calculate_quote_pricing(items: Iterable[QuoteItem],
                            settings: Optional[Settings] = None) -> QuotePricing:
    """Aggregate line items into quote totals."""
    settings = settings or get_settings()
    items = list(items)

    subtotal = sum(item.original_price * item.quantity for item in items)
    discounted_total = sum(item.total for item in items)
    discount = subtotal - discounted_total
    tax = discounted_total * (settings.tax_rate / 100.0)
    shipping = 0.0 if discounted_total > settings.free_shipping_threshold else settings.flat_shipping_fee

    return QuotePricing(
        subtotal=subtotal,
        discount=discount,
        discount_percentage=(discount / subtotal * 100) if subtotal > 0 else 0.0,
        tax=tax,
        tax_rate=settings.tax_rate,
        shipping=shipping,
        total=subtotal - discount + tax + shipping,
        currency=settings.currency,
    )


def reconcile_pricing(pricing: QuotePricing) -> QuotePricing:
    """Re-derive the dependent fields of hand-edited pricing."""
    return replace(
        pricing,
        discount_percentage=(pricing.discount / pricing.subtotal * 100) if pricing.subtotal > 0 else 0.0,
        total=pricing.subtotal - pricing.discount + pricing.tax + pricing.shipping,
    )
