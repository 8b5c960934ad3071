"""
Pricing Engine - Customer-specific unit price resolution with a breakdown.

Discounts stack in a fixed order, each recorded as a breakdown step:

1. Base: MSRP
2. Tier: percentage off MSRP for the customer's (or price list's) tier
3. Override: a fixed price for the product ends the stack
4. Volume: deepest qualifying quantity break (total-off-MSRP)
5. Global: flat price-list discount, then order-value break (compounding)
6. Clearance: closeout discounts (compounding)
7. Floor: never below the minimum unit price

Calculation never raises. Bad or missing data degrades to the closest safe
price so a pricing problem cannot block a checkout or quote.
"""
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Iterable, Optional

from ..config.settings import TIER_CONFIG, Settings, get_settings
from .models import (
    BreakdownItem,
    BulkPricingResponse,
    DiscountType,
    OrderType,
    PriceCalculation,
    PriceCalculationInput,
    PriceList,
    to_number,
)
from .rule_matcher import RuleMatcher, is_effective, select_volume_break

logger = logging.getLogger(__name__)

MINIMUM_UNIT_PRICE = 0.01


def _tier_key(tier) -> Optional[str]:
    if tier is None:
        return None
    return getattr(tier, 'value', tier)


def normalize_quantity(quantity) -> int:
    """Coerce a quantity to a positive integer; anything else becomes 1."""
    try:
        qty = int(quantity)
    except (TypeError, ValueError, OverflowError):
        return 1
    return qty if qty > 0 else 1


# ---------------------------------------------------------------------------
# Discount primitives
# ---------------------------------------------------------------------------

def apply_tier_discount(price: float, tier, tiers: Optional[dict] = None) -> float:
    """Price after the tier's percentage-off. Unknown tiers leave it unchanged."""
    config = (tiers or TIER_CONFIG).get(_tier_key(tier))
    if not config:
        return price
    return price * (1 - config['discount'])


def apply_volume_discount(price: float, quantity: int, volume_breaks) -> float:
    """Price after the deepest qualifying volume break."""
    selected = select_volume_break(quantity, volume_breaks)
    if selected is None:
        return price
    return price * (1 - selected.discount)


def apply_global_discount(price: float, discount: float) -> float:
    """Price after a decimal discount (0.10 = 10% off)."""
    return price * (1 - discount)


def apply_clearance_discount(price: float, discount_percent: float) -> float:
    """Price after a percentage discount (50 = 50% off)."""
    return price * (1 - discount_percent / 100.0)


# ---------------------------------------------------------------------------
# Line calculation
# ---------------------------------------------------------------------------

def calculate_customer_price(
    request: PriceCalculationInput,
    price_list: Optional[PriceList] = None,
    tiers: Optional[dict] = None,
    minimum_unit_price: float = MINIMUM_UNIT_PRICE,
) -> PriceCalculation:
    """
    Calculate the unit price of one line for one customer.

    Args:
        request: Product, quantity and customer context
        price_list: Optional customer price list
        tiers: Tier configuration override (defaults to TIER_CONFIG)
        minimum_unit_price: Floor applied after all discounts

    Returns:
        PriceCalculation with totals and an ordered breakdown
    """
    tiers = tiers or TIER_CONFIG
    product = request.product
    product_id = str(getattr(product, 'id', '') or '')
    msrp = max(to_number(getattr(product, 'msrp', 0.0)), 0.0)
    quantity = normalize_quantity(request.quantity)

    if price_list is not None and not is_effective(
            price_list.effective_from, price_list.effective_to, request.as_of):
        logger.debug("Price list %s not effective on %s, using tier pricing", price_list.id, request.as_of)
        price_list = None

    matcher = RuleMatcher(price_list)
    is_closeout = request.order_type == OrderType.CLOSEOUT.value

    price = msrp
    breakdown = [BreakdownItem(DiscountType.BASE, "MSRP", msrp)]
    discounts = {
        DiscountType.TIER: 0.0,
        DiscountType.VOLUME: 0.0,
        DiscountType.GLOBAL: 0.0,
        DiscountType.CLEARANCE: 0.0,
    }

    def step(kind: DiscountType, description: str, new_price: float,
             rate: Optional[float] = None, rule_id: Optional[str] = None):
        nonlocal price
        breakdown.append(BreakdownItem(kind, description, new_price - price, rate, rule_id))
        if kind in discounts:
            discounts[kind] += price - new_price
        price = new_price

    rule = matcher.find_product_rule(product_id, request.as_of)

    # Product-specific override ends the stack
    if rule is not None and rule.fixed_price is not None:
        fixed = max(to_number(rule.fixed_price), 0.0)
        step(DiscountType.OVERRIDE, f"Fixed price ${fixed:.2f}", fixed, rule_id=rule.rule_id)
        return _finish(product_id, msrp, quantity, price, breakdown, discounts,
                       price_list, minimum_unit_price, override=True)

    closeout = getattr(product, 'closeout', None) if is_closeout else None
    if closeout is not None and closeout.discount_percent > 0:
        # Closeout inventory is priced off MSRP instead of tier and volume
        pct = closeout.discount_percent
        step(DiscountType.CLEARANCE, f"Closeout {pct:g}% off MSRP",
             apply_clearance_discount(msrp, pct), rate=pct / 100.0)
    else:
        tier = _tier_key(price_list.base_tier if price_list and price_list.base_tier else request.pricing_tier)
        tier_config = tiers.get(tier)
        tier_rate = 0.0

        if not getattr(product, 'has_tier_pricing', False):
            logger.debug("No tier pricing for %s, using MSRP", product_id)
        elif tier_config is None:
            logger.debug("Unknown pricing tier %r for %s, using MSRP", tier, product_id)
        else:
            tier_rate = tier_config['discount']
            step(DiscountType.TIER, f"{tier_config.get('label', tier)} tier {tier_rate:.0%} off MSRP",
                 msrp * (1 - tier_rate), rate=tier_rate)

        selected = matcher.find_volume_break(rule, quantity)
        if selected is not None and selected.discount > tier_rate:
            # Break percentages are off MSRP and already include the tier rate
            step(DiscountType.VOLUME,
                 f"Volume break {selected.discount:.0%} off MSRP at {selected.min_qty}+ units",
                 msrp * (1 - selected.discount), rate=selected.discount, rule_id=rule.rule_id)

    if price_list is not None and price_list.global_discount:
        rate = price_list.global_discount
        step(DiscountType.GLOBAL, f"Price list discount {rate:.0%}",
             apply_global_discount(price, rate), rate=rate)

    order_total = to_number(request.order_total, None) if request.order_total is not None else None
    global_break = matcher.find_global_break(order_total)
    if global_break is not None and global_break.additional_discount:
        rate = global_break.additional_discount
        step(DiscountType.GLOBAL,
             f"Order volume {rate:.0%} at ${global_break.min_order_value:,.2f}+",
             apply_global_discount(price, rate), rate=rate)

    clearance = matcher.find_clearance_rules(request.order_type, quantity)
    if clearance is not None and clearance.additional_discount:
        rate = clearance.additional_discount
        new_price = apply_global_discount(price, rate)
        if clearance.max_discount_percent is not None:
            cap = msrp * (1 - to_number(clearance.max_discount_percent) / 100.0)
            new_price = max(new_price, min(cap, price))
        if new_price < price:
            step(DiscountType.CLEARANCE, f"Clearance additional {rate:.0%}", new_price, rate=rate)
        else:
            logger.debug("Clearance for %s capped at %.2f, no further discount", product_id, price)

    return _finish(product_id, msrp, quantity, price, breakdown, discounts,
                   price_list, minimum_unit_price)


def _finish(product_id, msrp, quantity, price, breakdown, discounts,
            price_list, minimum_unit_price, override=False) -> PriceCalculation:
    floored = price < minimum_unit_price
    if floored:
        logger.debug("Price %.4f for %s floored at %.2f", price, product_id, minimum_unit_price)
        price = minimum_unit_price

    savings = msrp - price
    return PriceCalculation(
        product_id=product_id,
        quantity=quantity,
        msrp=msrp,
        list_price=msrp,
        tier_discount=discounts[DiscountType.TIER],
        volume_discount=discounts[DiscountType.VOLUME],
        global_discount=discounts[DiscountType.GLOBAL],
        clearance_discount=discounts[DiscountType.CLEARANCE],
        fixed_price_override=override,
        final_price=price,
        total_price=price * quantity,
        savings=savings,
        savings_percent=(savings / msrp * 100) if msrp > 0 else 0.0,
        breakdown=tuple(breakdown),
        price_list_id=price_list.id if price_list is not None else None,
        floored=floored,
    )


# ---------------------------------------------------------------------------
# Order-level helpers
# ---------------------------------------------------------------------------

@dataclass
class MinimumOrderCheck:
    is_valid: bool
    minimum_required: Optional[float] = None
    shortfall: Optional[float] = None


def validate_minimum_order_value(order_total: float, tier=None,
                                 tiers: Optional[dict] = None) -> MinimumOrderCheck:
    """Check an order total against the tier's minimum order value."""
    config = (tiers or TIER_CONFIG).get(_tier_key(tier)) or {}
    minimum = config.get('min_order_value', 0.0)
    if order_total >= minimum:
        return MinimumOrderCheck(is_valid=True)
    return MinimumOrderCheck(
        is_valid=False,
        minimum_required=minimum,
        shortfall=minimum - order_total,
    )


class PricingEngine:
    """
    Prices lines and whole orders against the catalog and price lists.

    Resolution order per line:
    1. Look up the product in the catalog
    2. Resolve the company's price list (if any)
    3. Run the discount stack in calculate_customer_price
    """

    def __init__(self, catalog=None, price_lists=None, settings: Optional[Settings] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.settings = settings or get_settings()
        self.catalog = catalog
        self.price_lists = price_lists
        self.clock = clock or datetime.now

    def calculate(self, request: PriceCalculationInput,
                  price_list: Optional[PriceList] = None) -> PriceCalculation:
        """Price one line. Lines without a date are priced as of today."""
        if request.as_of is None:
            request = replace(request, as_of=self.clock().strftime('%Y-%m-%d'))
        return calculate_customer_price(
            request,
            price_list,
            tiers=self.settings.tiers,
            minimum_unit_price=self.settings.minimum_unit_price,
        )

    def price_list_for(self, company_id: str) -> Optional[PriceList]:
        if self.price_lists is None:
            return None
        return self.price_lists.for_company(company_id)

    def calculate_bulk(
        self,
        company_id: str,
        pricing_tier,
        items: Iterable[tuple[str, int]],
        order_type: Optional[str] = None,
        use_price_list: bool = True,
    ) -> BulkPricingResponse:
        """
        Price a whole order.

        The first pass prices every line without order-value breaks to find
        the order total; the second pass uses that total to qualify global
        order-volume breaks.
        """
        price_list = self.price_list_for(company_id) if use_price_list else None
        inputs = []
        missing = []
        for product_id, quantity in items:
            product = self.catalog.get_product(product_id) if self.catalog else None
            if product is None:
                logger.warning("Skipping unknown product %s in bulk pricing", product_id)
                missing.append(product_id)
                continue
            inputs.append(PriceCalculationInput(
                product=product,
                quantity=quantity,
                company_id=company_id,
                pricing_tier=pricing_tier,
                order_type=order_type,
            ))

        first_pass_total = sum(self.calculate(i, price_list).total_price for i in inputs)

        calculations = []
        for i in inputs:
            i.order_total = first_pass_total
            calculations.append(self.calculate(i, price_list))

        subtotal = sum(c.msrp * c.quantity for c in calculations)
        total = sum(c.total_price for c in calculations)
        discount = subtotal - total

        return BulkPricingResponse(
            company_id=company_id,
            calculations=calculations,
            order_subtotal=subtotal,
            total_discount=discount,
            order_total=total,
            average_discount=(discount / subtotal * 100) if subtotal > 0 else 0.0,
            missing_products=missing,
        )
