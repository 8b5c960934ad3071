"""
Rule Matcher - Finds the price-list rules that apply to a line.

Used by the pricing engine to look up product overrides, volume breaks,
order-volume breaks and clearance rules on top of the base tier pricing.
"""
import logging
from typing import Optional

from .models import (
    ClearanceRules,
    GlobalVolumeBreak,
    OrderType,
    PriceList,
    PriceRule,
    VolumeBreak,
)

logger = logging.getLogger(__name__)


def select_volume_break(quantity: int, volume_breaks) -> Optional[VolumeBreak]:
    """
    Pick the break with the highest ``min_qty`` that the quantity reaches.

    Breaks with a ``max_qty`` below the quantity are ignored. On equal
    thresholds the deeper discount wins.
    """
    if not volume_breaks:
        return None

    candidates = [
        b for b in volume_breaks
        if b.min_qty <= quantity and (b.max_qty is None or quantity <= b.max_qty)
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda b: (b.min_qty, b.discount))


def select_global_break(order_total: Optional[float], global_breaks) -> Optional[GlobalVolumeBreak]:
    """Pick the order-volume break with the highest qualifying ``min_order_value``."""
    if order_total is None or not global_breaks:
        return None

    candidates = [b for b in global_breaks if b.min_order_value <= order_total]
    if not candidates:
        return None
    return max(candidates, key=lambda b: (b.min_order_value, b.additional_discount))


def is_effective(effective_from: Optional[str], effective_to: Optional[str],
                 as_of: Optional[str]) -> bool:
    """Check an inclusive ISO date window. No date means no gating."""
    if not as_of:
        return True
    day = str(as_of)[:10]
    if effective_from and day < effective_from:
        return False
    if effective_to and day > effective_to:
        return False
    return True


class RuleMatcher:
    """
    Matches price-list rules against a line's context.

    A matcher wraps one price list; a missing price list matches nothing,
    which leaves the line on tier-only pricing.
    """

    def __init__(self, price_list: Optional[PriceList] = None):
        self.price_list = price_list
        self.loaded = price_list is not None

    def find_product_rule(self, product_id: str, as_of: Optional[str] = None) -> Optional[PriceRule]:
        """
        Find the rule for a product, honoring its effective window.

        Returns the first matching rule in price-list order.
        """
        if not self.loaded:
            return None

        for rule in self.price_list.rules:
            if rule.product_id != product_id:
                continue

            # Date range (ISO strings compare lexicographically)
            if not is_effective(rule.effective_from, rule.effective_to, as_of):
                logger.debug("Rule %s not effective on %s", rule.rule_id, as_of)
                continue

            return rule
        return None

    def find_volume_break(self, rule: Optional[PriceRule], quantity: int) -> Optional[VolumeBreak]:
        if rule is None:
            return None
        return select_volume_break(quantity, rule.volume_breaks)

    def find_global_break(self, order_total: Optional[float]) -> Optional[GlobalVolumeBreak]:
        if not self.loaded:
            return None
        return select_global_break(order_total, self.price_list.global_volume_breaks)

    def find_clearance_rules(self, order_type: Optional[str], quantity: int) -> Optional[ClearanceRules]:
        """Clearance rules applicable to this order type and quantity."""
        if not self.loaded or self.price_list.clearance_rules is None:
            return None

        rules = self.price_list.clearance_rules
        is_closeout = order_type == OrderType.CLOSEOUT.value
        if rules.apply_to_closeout_only and not is_closeout:
            return None
        if quantity < rules.min_order_qty:
            logger.debug(
                "Clearance skipped: quantity %s below minimum %s",
                quantity, rules.min_order_qty,
            )
            return None
        return rules
