"""
Quote Lifecycle Manager - creation, status transitions, revisions and
conversion of quotes into orders.

Every mutating operation reads the quote, changes a private copy and writes
it back with a compare-and-swap on its row version, so two concurrent
operations on the same quote cannot overwrite each other.
"""
import copy
import logging
import math
from collections import Counter
from dataclasses import fields, replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from ..config.settings import Settings, get_settings
from ..engine.models import PriceCalculationInput
from ..engine.pricing_engine import PricingEngine
from ..exceptions import (
    ConcurrencyConflictError,
    InvalidStateError,
    ProductNotFoundError,
    QuoteNotFoundError,
    TemplateNotFoundError,
    ValidationError,
)
from .models import (
    OrderReference,
    Quote,
    QuoteChanges,
    QuoteEvent,
    QuoteEventType,
    QuoteFilter,
    QuoteItem,
    QuoteRequest,
    QuoteRequestItem,
    QuoteStatus,
    QuoteSummary,
    QuoteTemplate,
    QuoteTemplateItem,
    QuoteTerms,
    QuoteType,
    QuoteVersion,
)
from .numbering import format_quote_number, generate_order_number, new_id, quote_sequence_scope
from .pricing import calculate_quote_pricing, normalize_item, reconcile_pricing
from .state_machine import ensure_transition

logger = logging.getLogger(__name__)

SYSTEM_USER = 'system'
DEFAULT_TIER = 'tier-1'
WON_STATUSES = (QuoteStatus.ACCEPTED, QuoteStatus.CONVERTED)
TERMS_FIELDS = frozenset(f.name for f in fields(QuoteTerms))
TERMS_DATETIME_FIELDS = frozenset({'valid_until', 'delivery_date'})
TERMS_REQUIRED_FIELDS = frozenset({'valid_until', 'payment_terms', 'shipping_terms'})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _coerce_datetime(name: str, value) -> datetime:
    """Accept a datetime or ISO-8601 string; naive values are taken as UTC."""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
        except ValueError:
            raise ValidationError(f"Invalid {name} '{value}'")
    if not isinstance(value, datetime):
        raise ValidationError(f"{name} must be a date and time")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _coerce_terms(terms: dict) -> dict:
    """Validate revised terms against the QuoteTerms field types."""
    unknown = set(terms) - TERMS_FIELDS
    if unknown:
        raise ValidationError(f"Unknown terms fields: {', '.join(sorted(unknown))}")

    coerced = {}
    for name, value in terms.items():
        if value is None:
            if name in TERMS_REQUIRED_FIELDS:
                raise ValidationError(f"{name} cannot be cleared")
            coerced[name] = None
        elif name in TERMS_DATETIME_FIELDS:
            coerced[name] = _coerce_datetime(name, value)
        elif isinstance(value, str):
            coerced[name] = value
        else:
            raise ValidationError(f"{name} must be text")
    return coerced


class QuoteLifecycleManager:
    """
    Manages the quote workflow on top of a QuoteRepository.

    Collaborators:
    - repository: QuoteRepository (storage, sequences, templates)
    - catalog: anything with get_product(product_id)
    - directory: anything with get_company(id) / get_user(id), optional
    - pricing_engine: PricingEngine used to price quote lines
    """

    def __init__(
        self,
        repository,
        catalog,
        directory=None,
        pricing_engine: Optional[PricingEngine] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
        rng=None,
    ):
        self.repository = repository
        self.catalog = catalog
        self.directory = directory
        self.settings = settings or get_settings()
        self.pricing_engine = pricing_engine or PricingEngine(catalog=catalog, settings=self.settings)
        self.clock = clock or _utcnow
        self.rng = rng

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _user_name(self, user_id: str) -> str:
        if user_id == SYSTEM_USER:
            return 'System'
        user = self.directory.get_user(user_id) if self.directory else None
        return user.name if user else 'Unknown User'

    def _event(self, event_type: QuoteEventType, user_id: str, timestamp: datetime,
               details: Optional[str] = None, metadata: Optional[dict] = None) -> QuoteEvent:
        return QuoteEvent(
            id=new_id('event'),
            timestamp=timestamp,
            type=event_type,
            user_id=user_id,
            user_name=self._user_name(user_id),
            details=details,
            metadata=metadata,
        )

    def _load(self, quote_id: str) -> Quote:
        quote = self.repository.find(quote_id)
        if quote is None:
            raise QuoteNotFoundError(quote_id)
        return quote

    def _price_line(self, index: int, line: QuoteRequestItem, company_id: str, tier: str) -> QuoteItem:
        product = self.catalog.get_product(line.product_id)
        if product is None:
            raise ProductNotFoundError(line.product_id)

        # Quotes start from tier-only pricing; negotiation happens in revisions
        calc = self.pricing_engine.calculate(PriceCalculationInput(
            product=product,
            quantity=line.quantity,
            company_id=company_id,
            pricing_tier=tier,
            as_of=self.clock().strftime('%Y-%m-%d'),
        ))

        return QuoteItem(
            id=f"item-{index}",
            product_id=product.id,
            product_name=product.name,
            sku=product.sku,
            quantity=calc.quantity,
            unit_price=calc.unit_price,
            original_price=calc.msrp,
            discount=calc.savings_percent,
            discount_type='percentage',
            total=calc.total_price,
            notes=line.notes,
            variant=line.variant,
        )

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_quote(self, request: QuoteRequest, user_id: str) -> Quote:
        """
        Create a draft quote from a request.

        Raises:
            ProductNotFoundError: if any requested product is unknown
        """
        now = self.clock()
        user = self.directory.get_user(user_id) if self.directory else None
        company = self.directory.get_company(request.company_id) if self.directory else None
        contact = self.directory.get_user(request.contact_id) if self.directory else None
        tier = company.pricing_tier if company else DEFAULT_TIER

        items = [
            self._price_line(index, line, request.company_id, tier)
            for index, line in enumerate(request.items, start=1)
        ]
        pricing = calculate_quote_pricing(items, self.settings)

        sequence = self.repository.next_sequence(quote_sequence_scope(now.year))
        quote_type = QuoteType(request.type)
        is_rep = user is not None and user.role == 'sales_rep'

        quote = Quote(
            id=new_id('quote'),
            number=format_quote_number(now.year, sequence),
            company_id=request.company_id,
            company_name=company.name if company else 'Unknown Company',
            contact_id=request.contact_id,
            contact_name=contact.name if contact else None,
            contact_email=contact.email if contact else None,
            created_by=user_id,
            created_by_name=self._user_name(user_id),
            assigned_to=user_id if is_rep else None,
            assigned_to_name=user.name if is_rep else None,
            status=QuoteStatus.DRAFT,
            type=quote_type,
            order_type=request.order_type,
            items=items,
            pricing=pricing,
            terms=QuoteTerms(
                valid_until=now + timedelta(days=self.settings.quote_validity_days),
                payment_terms=request.payment_terms or self.settings.default_payment_terms,
                shipping_terms=request.shipping_terms or self.settings.default_shipping_terms,
                delivery_date=request.requested_delivery_date,
                notes=request.notes,
            ),
            tags=list(request.tags),
            source=request.source,
            reference_number=request.reference_number,
            created_at=now,
            updated_at=now,
        )

        details = 'Quote created from RFQ' if quote_type == QuoteType.RFQ else 'Quote created'
        quote.timeline.append(self._event(QuoteEventType.CREATED, user_id, now, details))

        saved = self.repository.save(quote, expected_row_version=None)
        logger.info("Created %s (%s) for %s: %d items, total %.2f",
                    saved.number, saved.id, saved.company_id, len(items), pricing.total)
        return saved

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def update_quote_status(self, quote_id: str, status, user_id: str,
                            details: Optional[str] = None) -> Quote:
        """
        Move a quote to a new status and record it on the timeline.

        Raises:
            QuoteNotFoundError: unknown quote id
            InvalidStateError: transition not allowed from the current status
            ConcurrencyConflictError: quote changed since it was read
        """
        try:
            status = QuoteStatus(status)
        except ValueError:
            raise InvalidStateError(f"Unknown quote status '{status}'")
        if status == QuoteStatus.CONVERTED:
            raise InvalidStateError("Use convert_quote_to_order to convert a quote")

        quote = self._load(quote_id)
        ensure_transition(quote.status, status)

        now = self.clock()
        expected = quote.row_version
        previous = quote.status

        quote.status = status
        quote.updated_at = now
        quote.timeline.append(self._event(QuoteEventType(status.value), user_id, now, details))

        if status == QuoteStatus.EXPIRED:
            quote.terms.valid_until = min(quote.terms.valid_until, now)

        saved = self.repository.save(quote, expected)
        logger.info("Quote %s: %s → %s by %s", saved.number, previous.value, status.value, user_id)
        return saved

    def add_quote_revision(self, quote_id: str, changes: QuoteChanges, user_id: str) -> Quote:
        """
        Snapshot the current items and pricing, then apply the changes.

        Raises:
            QuoteNotFoundError: unknown quote id
            InvalidStateError: the quote can no longer be revised
            ValidationError: unknown or mistyped terms fields
        """
        quote = self._load(quote_id)
        ensure_transition(quote.status, QuoteStatus.REVISED)

        terms = _coerce_terms(changes.terms or {})

        change_list = []
        if changes.items is not None:
            change_list.append('Updated line items')
        if changes.pricing is not None:
            change_list.append('Adjusted pricing')
        if terms:
            change_list.append('Modified terms')

        now = self.clock()
        expected = quote.row_version

        quote.versions.append(QuoteVersion(
            version_number=quote.current_version,
            created_at=now,
            created_by=user_id,
            changes=tuple(change_list),
            pricing=copy.deepcopy(quote.pricing),
            items=tuple(copy.deepcopy(quote.items)),
        ))

        if changes.items is not None:
            quote.items = [normalize_item(i, self.settings.minimum_unit_price) for i in changes.items]
        if changes.pricing is not None:
            quote.pricing = reconcile_pricing(changes.pricing)
        elif changes.items is not None:
            quote.pricing = calculate_quote_pricing(quote.items, self.settings)
        if terms:
            quote.terms = replace(quote.terms, **terms)

        quote.current_version += 1
        quote.status = QuoteStatus.REVISED
        quote.updated_at = now

        summary = ', '.join(change_list) if change_list else 'No changes'
        quote.timeline.append(self._event(
            QuoteEventType.REVISED, user_id, now,
            f"Revision {quote.current_version}: {summary}",
        ))

        saved = self.repository.save(quote, expected)
        logger.info("Quote %s revised to version %d by %s", saved.number, saved.current_version, user_id)
        return saved

    def convert_quote_to_order(self, quote_id: str) -> OrderReference:
        """
        Convert an accepted quote into an order, exactly once.

        A quote that was already converted returns its existing order
        reference instead of minting a new order.

        Raises:
            QuoteNotFoundError: unknown quote id
            InvalidStateError: quote is not accepted
        """
        quote = self._load(quote_id)
        if quote.converted_order_id:
            return OrderReference(quote.converted_order_id, quote.converted_order_number)
        if quote.status != QuoteStatus.ACCEPTED:
            raise InvalidStateError('Only accepted quotes can be converted to orders')

        now = self.clock()
        expected = quote.row_version
        reference = OrderReference(
            order_id=new_id('order'),
            order_number=generate_order_number(now.year, self.rng),
        )

        quote.converted_order_id = reference.order_id
        quote.converted_order_number = reference.order_number
        quote.status = QuoteStatus.CONVERTED
        quote.updated_at = now
        quote.timeline.append(self._event(
            QuoteEventType.CONVERTED, SYSTEM_USER, now,
            f"Converted to order {reference.order_number}",
            metadata={'orderId': reference.order_id, 'orderNumber': reference.order_number},
        ))

        try:
            self.repository.save(quote, expected)
        except ConcurrencyConflictError:
            current = self._load(quote_id)
            if current.converted_order_id:
                logger.info("Quote %s already converted concurrently to %s",
                            current.number, current.converted_order_number)
                return OrderReference(current.converted_order_id, current.converted_order_number)
            raise

        logger.info("Quote %s converted to order %s", quote.number, reference.order_number)
        return reference

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    def check_expiring_quotes(self) -> list[Quote]:
        """Sent quotes that expire within the expiring window."""
        now = self.clock()
        horizon = now + timedelta(days=self.settings.expiring_window_days)
        return [
            q for q in self.repository.list_by_filter(QuoteFilter(status=[QuoteStatus.SENT]))
            if now < q.terms.valid_until <= horizon
        ]

    def expire_quotes(self) -> int:
        """Expire sent/viewed quotes past their validity. Returns the count."""
        now = self.clock()
        candidates = [
            q for q in self.repository.list_by_filter(
                QuoteFilter(status=[QuoteStatus.SENT, QuoteStatus.VIEWED]))
            if q.terms.valid_until < now
        ]

        expired = 0
        for quote in candidates:
            try:
                self.update_quote_status(quote.id, QuoteStatus.EXPIRED, SYSTEM_USER, 'Quote expired')
            except (ConcurrencyConflictError, InvalidStateError) as e:
                # Customer acted on the quote between the scan and the update
                logger.warning("Skipped expiring %s: %s", quote.number, e)
                continue
            expired += 1

        if expired:
            logger.info("Expired %d quotes", expired)
        return expired

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_quotes(self, quote_filter: Optional[QuoteFilter] = None) -> list[Quote]:
        return self.repository.list_by_filter(quote_filter)

    def get_quote(self, quote_id: str) -> Optional[Quote]:
        return self.repository.find(quote_id)

    def get_quote_summary(self, quote_filter: Optional[QuoteFilter] = None) -> QuoteSummary:
        """Aggregate counts, values and conversion metrics."""
        quotes = self.get_quotes(quote_filter)
        counts = Counter(q.status for q in quotes)
        won = [q for q in quotes if q.status in WON_STATUSES]
        total_value = sum(q.pricing.total for q in quotes)

        return QuoteSummary(
            total_quotes=len(quotes),
            draft_quotes=counts[QuoteStatus.DRAFT],
            sent_quotes=counts[QuoteStatus.SENT],
            viewed_quotes=counts[QuoteStatus.VIEWED],
            revised_quotes=counts[QuoteStatus.REVISED],
            accepted_quotes=counts[QuoteStatus.ACCEPTED],
            rejected_quotes=counts[QuoteStatus.REJECTED],
            expired_quotes=counts[QuoteStatus.EXPIRED],
            converted_quotes=counts[QuoteStatus.CONVERTED],
            cancelled_quotes=counts[QuoteStatus.CANCELLED],
            total_value=total_value,
            accepted_value=sum(q.pricing.total for q in won),
            conversion_rate=(len(won) / len(quotes) * 100) if quotes else 0.0,
            average_quote_value=(total_value / len(quotes)) if quotes else 0.0,
            average_time_to_close=self._average_time_to_close(won),
        )

    @staticmethod
    def _average_time_to_close(won: list[Quote]) -> float:
        """Mean whole days from creation to the first accepted event."""
        if not won:
            return 0.0

        total_days = 0
        for quote in won:
            accepted = quote.events_of(QuoteEventType.ACCEPTED)
            if not accepted:
                continue
            elapsed = accepted[0].timestamp - quote.created_at
            total_days += math.floor(elapsed.total_seconds() / 86400)
        return total_days / len(won)

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    def get_templates(self) -> list[QuoteTemplate]:
        return self.repository.list_templates()

    def get_template(self, template_id: str) -> Optional[QuoteTemplate]:
        return self.repository.find_template(template_id)

    def save_template(self, name: str, description: str, quote: Quote, user_id: str) -> QuoteTemplate:
        """Save a quote's lines and terms as a reusable template."""
        now = self.clock()
        template = QuoteTemplate(
            id=new_id('template'),
            name=name,
            description=description,
            items=[
                QuoteTemplateItem(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    discount=item.discount,
                    discount_type=item.discount_type,
                )
                for item in quote.items
            ],
            terms={
                'payment_terms': quote.terms.payment_terms,
                'shipping_terms': quote.terms.shipping_terms,
                'notes': quote.terms.notes,
            },
            tags=list(quote.tags),
            created_by=user_id,
            created_at=now,
            updated_at=now,
        )
        saved = self.repository.save_template(template)
        logger.info("Saved template %s from quote %s", saved.id, quote.number)
        return saved

    def create_quote_from_template(self, template_id: str, company_id: str, user_id: str,
                                   contact_id: Optional[str] = None) -> Quote:
        """Create a draft quote pre-filled from a template."""
        template = self.repository.find_template(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)

        request = QuoteRequest(
            company_id=company_id,
            contact_id=contact_id,
            type=QuoteType.PROACTIVE,
            items=[QuoteRequestItem(product_id=i.product_id, quantity=i.quantity) for i in template.items],
            notes=template.terms.get('notes'),
            payment_terms=template.terms.get('payment_terms'),
            shipping_terms=template.terms.get('shipping_terms'),
            tags=list(template.tags),
        )
        quote = self.create_quote(request, user_id)

        template.usage_count += 1
        template.updated_at = self.clock()
        self.repository.save_template(template)
        return quote
