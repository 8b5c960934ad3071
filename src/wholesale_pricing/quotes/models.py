"""
Data models for quotes.

A Quote is a negotiable, versioned pricing document. Lifecycle operations
mutate it; its timeline and version history are append-only.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class QuoteStatus(str, Enum):
    DRAFT = 'draft'
    SENT = 'sent'
    VIEWED = 'viewed'
    REVISED = 'revised'
    ACCEPTED = 'accepted'
    REJECTED = 'rejected'
    EXPIRED = 'expired'
    CONVERTED = 'converted'
    CANCELLED = 'cancelled'


class QuoteType(str, Enum):
    RFQ = 'rfq'
    PROACTIVE = 'proactive'
    RENEWAL = 'renewal'


class QuoteEventType(str, Enum):
    CREATED = 'created'
    SENT = 'sent'
    VIEWED = 'viewed'
    REVISED = 'revised'
    ACCEPTED = 'accepted'
    REJECTED = 'rejected'
    EXPIRED = 'expired'
    CONVERTED = 'converted'
    CANCELLED = 'cancelled'


@dataclass
class QuoteItem:
    """A priced line on a quote. ``discount`` is a percentage off MSRP."""
    id: str
    product_id: str
    quantity: int
    unit_price: float
    original_price: float
    discount: float
    total: float
    product_name: str = ''
    sku: str = ''
    discount_type: str = 'percentage'
    discount_reason: Optional[str] = None
    notes: Optional[str] = None
    variant: Optional[dict[str, str]] = None


@dataclass
class QuotePricing:
    """Quote totals. ``total == subtotal - discount + tax + shipping``."""
    subtotal: float
    discount: float
    discount_percentage: float
    tax: float
    tax_rate: float
    shipping: float
    total: float
    currency: str = 'USD'


@dataclass
class QuoteTerms:
    valid_until: datetime
    payment_terms: str = 'net-30'
    shipping_terms: str = 'fob-destination'
    payment_terms_custom: Optional[str] = None
    shipping_terms_custom: Optional[str] = None
    delivery_date: Optional[datetime] = None
    notes: Optional[str] = None
    internal_notes: Optional[str] = None


@dataclass(frozen=True)
class QuoteVersion:
    """Snapshot of a quote taken before a revision was applied."""
    version_number: int
    created_at: datetime
    created_by: str
    changes: tuple[str, ...]
    pricing: QuotePricing
    items: tuple[QuoteItem, ...]


@dataclass(frozen=True)
class QuoteEvent:
    """An entry in the quote's audit timeline."""
    id: str
    timestamp: datetime
    type: QuoteEventType
    user_id: str
    user_name: str
    details: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


@dataclass
class Quote:
    id: str
    number: str
    company_id: str
    company_name: str
    created_by: str
    created_by_name: str
    status: QuoteStatus
    type: QuoteType
    items: list[QuoteItem]
    pricing: QuotePricing
    terms: QuoteTerms
    created_at: datetime
    updated_at: datetime
    current_version: int = 1
    versions: list[QuoteVersion] = field(default_factory=list)
    timeline: list[QuoteEvent] = field(default_factory=list)
    order_type: Optional[str] = None
    contact_id: Optional[str] = None
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    assigned_to: Optional[str] = None
    assigned_to_name: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    source: Optional[str] = None
    reference_number: Optional[str] = None
    converted_order_id: Optional[str] = None
    converted_order_number: Optional[str] = None
    # Optimistic-concurrency counter, bumped by the repository on every save
    row_version: int = 0

    def events_of(self, event_type: QuoteEventType) -> list[QuoteEvent]:
        return [e for e in self.timeline if e.type == event_type]


@dataclass
class QuoteRequestItem:
    product_id: str
    quantity: int
    variant: Optional[dict[str, str]] = None
    notes: Optional[str] = None


@dataclass
class QuoteRequest:
    """Input to quote creation, from a rep or a customer RFQ."""
    company_id: str
    items: list[QuoteRequestItem]
    type: QuoteType = QuoteType.PROACTIVE
    contact_id: Optional[str] = None
    order_type: Optional[str] = None
    notes: Optional[str] = None
    requested_delivery_date: Optional[datetime] = None
    reference_number: Optional[str] = None
    payment_terms: Optional[str] = None
    shipping_terms: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    source: Optional[str] = None


@dataclass
class QuoteChanges:
    """Partial changes applied by a revision. ``terms`` holds QuoteTerms fields."""
    items: Optional[list[QuoteItem]] = None
    pricing: Optional[QuotePricing] = None
    terms: Optional[dict[str, Any]] = None


@dataclass
class QuoteFilter:
    status: Optional[list[QuoteStatus]] = None
    type: Optional[list[QuoteType]] = None
    company_id: Optional[str] = None
    assigned_to: Optional[str] = None
    created_by: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    search: Optional[str] = None

    def matches(self, quote: Quote) -> bool:
        """Check a quote against every populated criterion."""
        if self.status and quote.status not in self.status:
            return False
        if self.type and quote.type not in self.type:
            return False
        if self.company_id and quote.company_id != self.company_id:
            return False
        if self.assigned_to and quote.assigned_to != self.assigned_to:
            return False
        if self.created_by and quote.created_by != self.created_by:
            return False
        if self.date_from and quote.created_at < self.date_from:
            return False
        if self.date_to and quote.created_at > self.date_to:
            return False
        if self.min_value is not None and quote.pricing.total < self.min_value:
            return False
        if self.max_value is not None and quote.pricing.total > self.max_value:
            return False
        if self.search:
            needle = self.search.lower()
            haystacks = [quote.number, quote.company_name] + [i.product_name for i in quote.items]
            if not any(needle in (h or '').lower() for h in haystacks):
                return False
        return True


@dataclass
class QuoteSummary:
    total_quotes: int
    draft_quotes: int
    sent_quotes: int
    viewed_quotes: int
    revised_quotes: int
    accepted_quotes: int
    rejected_quotes: int
    expired_quotes: int
    converted_quotes: int
    cancelled_quotes: int
    total_value: float
    accepted_value: float  # accepted and converted
    conversion_rate: float
    average_quote_value: float
    average_time_to_close: float  # in days


@dataclass
class QuoteTemplateItem:
    product_id: str
    quantity: int
    discount: Optional[float] = None
    discount_type: Optional[str] = None


@dataclass
class QuoteTemplate:
    id: str
    name: str
    items: list[QuoteTemplateItem]
    created_by: str
    created_at: datetime
    updated_at: datetime
    description: str = ''
    terms: dict[str, Any] = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)
    usage_count: int = 0


@dataclass(frozen=True)
class OrderReference:
    order_id: str
    order_number: str
