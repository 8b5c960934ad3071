"""
Data models for the pricing engine.

Uses dataclasses for structured, type-safe data representation. Collaborator
documents (products, price lists) arrive as JSON-shaped dicts in camelCase and
are parsed with the ``from_dict`` constructors.
"""
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, Optional, Union


class PricingTier(str, Enum):
    TIER_1 = 'tier-1'
    TIER_2 = 'tier-2'
    TIER_3 = 'tier-3'


class OrderType(str, Enum):
    AT_ONCE = 'at-once'
    PREBOOK = 'prebook'
    CLOSEOUT = 'closeout'


class DiscountType(str, Enum):
    """Breakdown step types, in stacking order."""
    BASE = 'base'
    TIER = 'tier'
    OVERRIDE = 'override'
    VOLUME = 'volume'
    GLOBAL = 'global'
    CLEARANCE = 'clearance'


def _get(data: dict, snake: str, camel: str, default=None):
    """Read a key that may be spelled in snake_case or camelCase."""
    if snake in data:
        return data[snake]
    return data.get(camel, default)


def to_number(value, default: float = 0.0) -> float:
    """Coerce a collaborator-supplied number, falling back on garbage."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number) or math.isinf(number):
        return default
    return number


# ---------------------------------------------------------------------------
# Catalog documents
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TierPrice:
    """A per-tier price entry from the product's pricing table."""
    price: float
    min_quantity: int = 1


@dataclass(frozen=True)
class AtOnceMetadata:
    """In-stock inventory that ships immediately."""
    available_quantity: Optional[int] = None
    ships_within_days: Optional[int] = None
    kind: Literal['at-once'] = 'at-once'


@dataclass(frozen=True)
class PrebookMetadata:
    """Future-season inventory ordered ahead of a delivery window."""
    season: str = ''
    delivery_start: Optional[str] = None
    delivery_end: Optional[str] = None
    deposit_percent: float = 30.0
    kind: Literal['prebook'] = 'prebook'


@dataclass(frozen=True)
class CloseoutMetadata:
    """Time-limited clearance inventory priced off MSRP."""
    discount_percent: float = 0.0
    expires_at: Optional[str] = None
    remaining_quantity: Optional[int] = None
    final_sale: bool = True
    kind: Literal['closeout'] = 'closeout'


OrderTypeMetadata = Union[AtOnceMetadata, PrebookMetadata, CloseoutMetadata]


def parse_order_type_metadata(kind: str, data: dict) -> Optional[OrderTypeMetadata]:
    """Build the metadata variant keyed by order type."""
    if kind == OrderType.AT_ONCE.value:
        return AtOnceMetadata(
            available_quantity=_get(data, 'available_quantity', 'availableQuantity'),
            ships_within_days=_get(data, 'ships_within_days', 'shipsWithinDays'),
        )
    if kind == OrderType.PREBOOK.value:
        return PrebookMetadata(
            season=data.get('season', ''),
            delivery_start=_get(data, 'delivery_start', 'deliveryStart'),
            delivery_end=_get(data, 'delivery_end', 'deliveryEnd'),
            deposit_percent=to_number(_get(data, 'deposit_percent', 'depositPercent', 30.0), 30.0),
        )
    if kind == OrderType.CLOSEOUT.value:
        return CloseoutMetadata(
            discount_percent=to_number(_get(data, 'discount_percent', 'discountPercent', 0.0)),
            expires_at=_get(data, 'expires_at', 'expiresAt'),
            remaining_quantity=_get(data, 'remaining_quantity', 'remainingQuantity'),
            final_sale=bool(_get(data, 'final_sale', 'finalSale', True)),
        )
    return None


@dataclass(frozen=True)
class Product:
    """A catalog product. Immutable once loaded."""
    id: str
    msrp: float
    name: str = ''
    sku: str = ''
    pricing: Optional[dict[str, TierPrice]] = None
    order_type_metadata: dict[str, OrderTypeMetadata] = field(default_factory=dict)

    @property
    def has_tier_pricing(self) -> bool:
        return bool(self.pricing)

    @property
    def closeout(self) -> Optional[CloseoutMetadata]:
        meta = self.order_type_metadata.get(OrderType.CLOSEOUT.value)
        return meta if isinstance(meta, CloseoutMetadata) else None

    @classmethod
    def from_dict(cls, data: dict) -> 'Product':
        pricing = None
        raw_pricing = data.get('pricing')
        if isinstance(raw_pricing, dict):
            pricing = {}
            for tier, entry in raw_pricing.items():
                if isinstance(entry, dict):
                    pricing[tier] = TierPrice(
                        price=to_number(entry.get('price')),
                        min_quantity=int(_get(entry, 'min_quantity', 'minQuantity', 1) or 1),
                    )

        metadata = {}
        for kind, entry in (_get(data, 'order_type_metadata', 'orderTypeMetadata') or {}).items():
            parsed = parse_order_type_metadata(kind, entry or {})
            if parsed is not None:
                metadata[kind] = parsed

        return cls(
            id=str(data['id']),
            msrp=to_number(data.get('msrp')),
            name=data.get('name', ''),
            sku=data.get('sku', ''),
            pricing=pricing,
            order_type_metadata=metadata,
        )


# ---------------------------------------------------------------------------
# Price list documents
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class VolumeBreak:
    """Quantity threshold unlocking a total-off-MSRP discount (0.35 = 35% off)."""
    min_qty: int
    discount: float
    max_qty: Optional[int] = None


@dataclass(frozen=True)
class PriceRule:
    """Product-specific pricing rule: volume breaks or a fixed price."""
    product_id: str
    volume_breaks: tuple[VolumeBreak, ...] = ()
    fixed_price: Optional[float] = None
    notes: Optional[str] = None
    effective_from: Optional[str] = None
    effective_to: Optional[str] = None

    @property
    def rule_id(self) -> str:
        return f"rule-{self.product_id}"


@dataclass(frozen=True)
class GlobalVolumeBreak:
    """Additional discount unlocked by total order value."""
    min_order_value: float
    additional_discount: float


@dataclass(frozen=True)
class ClearanceRules:
    additional_discount: float
    min_order_qty: int = 1
    apply_to_closeout_only: bool = True
    max_discount_percent: Optional[float] = None


@dataclass(frozen=True)
class PriceList:
    """Customer price list. Read-only to the pricing core."""
    id: str
    name: str = ''
    company_id: Optional[str] = None
    base_tier: Optional[str] = None
    rules: tuple[PriceRule, ...] = ()
    global_discount: Optional[float] = None
    global_volume_breaks: tuple[GlobalVolumeBreak, ...] = ()
    clearance_rules: Optional[ClearanceRules] = None
    effective_from: Optional[str] = None
    effective_to: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> 'PriceList':
        rules = []
        for raw in data.get('rules') or []:
            breaks = tuple(
                VolumeBreak(
                    min_qty=int(_get(b, 'min_qty', 'minQty', 0) or 0),
                    discount=to_number(b.get('discount')),
                    max_qty=_get(b, 'max_qty', 'maxQty'),
                )
                for b in (_get(raw, 'volume_breaks', 'volumeBreaks') or [])
            )
            fixed = _get(raw, 'fixed_price', 'fixedPrice')
            rules.append(PriceRule(
                product_id=str(_get(raw, 'product_id', 'productId')),
                volume_breaks=breaks,
                fixed_price=to_number(fixed) if fixed is not None else None,
                notes=raw.get('notes'),
                effective_from=_get(raw, 'effective_from', 'effectiveFrom'),
                effective_to=_get(raw, 'effective_to', 'effectiveTo'),
            ))

        global_breaks = tuple(
            GlobalVolumeBreak(
                min_order_value=to_number(_get(b, 'min_order_value', 'minOrderValue')),
                additional_discount=to_number(_get(b, 'additional_discount', 'additionalDiscount')),
            )
            for b in (_get(data, 'global_volume_breaks', 'globalVolumeBreaks') or [])
        )

        clearance = None
        raw_clearance = _get(data, 'clearance_rules', 'clearanceRules')
        if raw_clearance:
            clearance = ClearanceRules(
                additional_discount=to_number(_get(raw_clearance, 'additional_discount', 'additionalDiscount')),
                min_order_qty=int(_get(raw_clearance, 'min_order_qty', 'minOrderQty', 1) or 1),
                apply_to_closeout_only=bool(_get(raw_clearance, 'apply_to_closeout_only', 'applyToCloseoutOnly', True)),
                max_discount_percent=_get(raw_clearance, 'max_discount_percent', 'maxDiscountPercent'),
            )

        global_discount = _get(data, 'global_discount', 'globalDiscount')
        return cls(
            id=str(data['id']),
            name=data.get('name', ''),
            company_id=_get(data, 'company_id', 'companyId'),
            base_tier=_get(data, 'base_tier', 'baseTier'),
            rules=tuple(rules),
            global_discount=to_number(global_discount) if global_discount is not None else None,
            global_volume_breaks=global_breaks,
            clearance_rules=clearance,
            effective_from=_get(data, 'effective_from', 'effectiveFrom'),
            effective_to=_get(data, 'effective_to', 'effectiveTo'),
        )


# ---------------------------------------------------------------------------
# Calculation input / output
# ---------------------------------------------------------------------------

@dataclass
class PriceCalculationInput:
    """A single line to price for a customer."""
    product: Product
    quantity: int
    company_id: str
    pricing_tier: Optional[str] = None
    order_type: Optional[str] = None
    order_total: Optional[float] = None
    as_of: Optional[str] = None  # ISO date for rule effective windows


@dataclass(frozen=True)
class BreakdownItem:
    """A single step in the price breakdown. ``amount`` is the signed adjustment."""
    type: DiscountType
    description: str
    amount: float
    discount: Optional[float] = None
    rule_id: Optional[str] = None


@dataclass(frozen=True)
class PriceCalculation:
    """Result of pricing one line. Never mutated after return."""
    product_id: str
    quantity: int
    msrp: float
    list_price: float
    tier_discount: float
    volume_discount: float
    global_discount: float
    clearance_discount: float
    fixed_price_override: bool
    final_price: float
    total_price: float
    savings: float
    savings_percent: float
    breakdown: tuple[BreakdownItem, ...] = ()
    price_list_id: Optional[str] = None
    floored: bool = False

    @property
    def unit_price(self) -> float:
        return self.final_price

    @property
    def applied_discounts(self) -> list[str]:
        """Discount step types applied, excluding the base price."""
        return [b.type.value for b in self.breakdown if b.type != DiscountType.BASE]

    def get_breakdown_text(self) -> str:
        """Get human-readable breakdown as formatted text."""
        lines = []
        for b in self.breakdown:
            lines.append(f"→ {b.type.value}: {b.description} ({b.amount:+.2f})")
        lines.append(f"= ${self.final_price:.2f} × {self.quantity} = ${self.total_price:.2f}")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {
            'productId': self.product_id,
            'quantity': self.quantity,
            'msrp': self.msrp,
            'listPrice': self.list_price,
            'tierDiscount': self.tier_discount,
            'volumeDiscount': self.volume_discount,
            'globalDiscount': self.global_discount,
            'clearanceDiscount': self.clearance_discount,
            'fixedPriceOverride': self.fixed_price_override,
            'finalPrice': self.final_price,
            'unitPrice': self.unit_price,
            'totalPrice': self.total_price,
            'savings': self.savings,
            'savingsPercent': self.savings_percent,
            'appliedDiscounts': self.applied_discounts,
            'priceListId': self.price_list_id,
            'breakdown': [
                {
                    'type': b.type.value,
                    'description': b.description,
                    'amount': b.amount,
                    'discount': b.discount,
                    'ruleId': b.rule_id,
                }
                for b in self.breakdown
            ],
        }


@dataclass
class BulkPricingResponse:
    """Pricing for a whole order."""
    company_id: str
    calculations: list[PriceCalculation]
    order_subtotal: float
    total_discount: float
    order_total: float
    average_discount: float
    missing_products: list[str] = field(default_factory=list)
