"""
Quotes API - FastAPI router for the quote lifecycle.
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, ConfigDict

from ..exceptions import (
    ConcurrencyConflictError,
    InvalidStateError,
    NotFoundError,
    PricingError,
    ValidationError,
)
from ..quotes.lifecycle import QuoteLifecycleManager
from ..quotes.models import (
    QuoteChanges,
    QuoteFilter,
    QuoteItem,
    QuotePricing,
    QuoteRequest,
    QuoteRequestItem,
    QuoteStatus,
    QuoteType,
)
from .state import get_manager

router = APIRouter(prefix="/api/quotes", tags=["quotes"])


def raise_http(error: PricingError):
    """Map a domain error onto an HTTP error."""
    if isinstance(error, NotFoundError):
        raise HTTPException(status_code=404, detail=str(error))
    if isinstance(error, (InvalidStateError, ConcurrencyConflictError)):
        raise HTTPException(status_code=409, detail=str(error))
    if isinstance(error, ValidationError):
        raise HTTPException(status_code=400, detail=str(error))
    raise HTTPException(status_code=500, detail=str(error))


# Pydantic models for API
class QuoteItemRequest(BaseModel):
    product_id: str
    quantity: int
    variant: Optional[dict[str, str]] = None
    notes: Optional[str] = None


class CreateQuoteRequest(BaseModel):
    """Request model for creating a quote."""
    company_id: str
    items: list[QuoteItemRequest]
    type: QuoteType = QuoteType.PROACTIVE
    contact_id: Optional[str] = None
    order_type: Optional[str] = None
    notes: Optional[str] = None
    requested_delivery_date: Optional[datetime] = None
    reference_number: Optional[str] = None
    send_immediately: bool = False


class RevisedItem(BaseModel):
    id: str
    product_id: str
    quantity: int
    unit_price: float
    original_price: float
    discount: float = 0.0
    product_name: str = ''
    sku: str = ''
    discount_type: str = 'percentage'
    discount_reason: Optional[str] = None
    notes: Optional[str] = None


class RevisedPricing(BaseModel):
    subtotal: float
    discount: float
    tax: float
    tax_rate: float
    shipping: float
    currency: str = 'USD'


class RevisedTerms(BaseModel):
    """Terms fields a revision may change. Unknown fields are rejected."""
    model_config = ConfigDict(extra='forbid')

    valid_until: Optional[datetime] = None
    payment_terms: Optional[str] = None
    shipping_terms: Optional[str] = None
    payment_terms_custom: Optional[str] = None
    shipping_terms_custom: Optional[str] = None
    delivery_date: Optional[datetime] = None
    notes: Optional[str] = None
    internal_notes: Optional[str] = None


class Revision(BaseModel):
    items: Optional[list[RevisedItem]] = None
    pricing: Optional[RevisedPricing] = None
    terms: Optional[RevisedTerms] = None


class UpdateQuoteRequest(BaseModel):
    """A PATCH carries one of: status, revision or action."""
    status: Optional[QuoteStatus] = None
    details: Optional[str] = None
    revision: Optional[Revision] = None
    action: Optional[str] = None  # accept, reject, send, request-revision
    reason: Optional[str] = None
    revision_notes: Optional[str] = None


class SaveTemplateRequest(BaseModel):
    name: str
    quote_id: str
    description: str = ''


def _to_changes(revision: Revision) -> QuoteChanges:
    items = None
    if revision.items is not None:
        items = [
            QuoteItem(total=i.unit_price * i.quantity, **i.model_dump())
            for i in revision.items
        ]
    pricing = None
    if revision.pricing is not None:
        # Derived fields are recomputed by the lifecycle manager
        pricing = QuotePricing(discount_percentage=0.0, total=0.0, **revision.pricing.model_dump())
    terms = revision.terms.model_dump(exclude_unset=True) if revision.terms is not None else None
    return QuoteChanges(items=items, pricing=pricing, terms=terms)


def _action_to_status(body: UpdateQuoteRequest) -> tuple[QuoteStatus, str]:
    if body.action == 'accept':
        return QuoteStatus.ACCEPTED, 'Customer accepted the quote'
    if body.action == 'reject':
        if not (body.reason or '').strip():
            raise ValidationError('A rejection reason is required')
        return QuoteStatus.REJECTED, body.reason.strip()
    if body.action == 'send':
        return QuoteStatus.SENT, 'Quote sent to customer'
    if body.action == 'request-revision':
        if not (body.revision_notes or '').strip():
            raise ValidationError('Revision notes are required')
        return QuoteStatus.REVISED, body.revision_notes.strip()
    raise ValidationError(f"Invalid action '{body.action}'")


# Endpoints

@router.get("")
async def list_quotes(
    status: Optional[str] = None,
    type: Optional[str] = None,
    company_id: Optional[str] = None,
    search: Optional[str] = None,
    min_value: Optional[float] = None,
    max_value: Optional[float] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    manager: QuoteLifecycleManager = Depends(get_manager),
):
    """List quotes with a summary. ``status``/``type`` are comma-separated."""
    try:
        quote_filter = QuoteFilter(
            status=[QuoteStatus(s) for s in status.split(',')] if status else None,
            type=[QuoteType(t) for t in type.split(',')] if type else None,
            company_id=company_id,
            search=search,
            min_value=min_value,
            max_value=max_value,
            date_from=date_from,
            date_to=date_to,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    quotes = manager.get_quotes(quote_filter)
    summary = manager.get_quote_summary(quote_filter)
    return jsonable_encoder({"quotes": quotes, "summary": summary, "total": len(quotes)})


@router.post("", status_code=201)
async def create_quote(
    body: CreateQuoteRequest,
    x_user_id: str = Header(...),
    manager: QuoteLifecycleManager = Depends(get_manager),
):
    """Create a draft quote, optionally sending it right away."""
    if not body.company_id or not body.items:
        raise HTTPException(status_code=400, detail="Invalid quote request")

    request = QuoteRequest(
        company_id=body.company_id,
        items=[QuoteRequestItem(**i.model_dump()) for i in body.items],
        type=body.type,
        contact_id=body.contact_id,
        order_type=body.order_type,
        notes=body.notes,
        requested_delivery_date=body.requested_delivery_date,
        reference_number=body.reference_number,
    )
    try:
        quote = manager.create_quote(request, x_user_id)
        if body.send_immediately:
            quote = manager.update_quote_status(quote.id, QuoteStatus.SENT, x_user_id, 'Quote sent to customer')
    except PricingError as e:
        raise_http(e)
    return jsonable_encoder(quote)


@router.get("/expiring")
async def expiring_quotes(manager: QuoteLifecycleManager = Depends(get_manager)):
    """Sent quotes about to expire."""
    quotes = manager.check_expiring_quotes()
    return jsonable_encoder({"quotes": quotes, "count": len(quotes)})


@router.post("/check-expiration")
async def check_expiration(manager: QuoteLifecycleManager = Depends(get_manager)):
    """Expire overdue quotes and report the ones expiring soon."""
    expired = manager.expire_quotes()
    expiring = manager.check_expiring_quotes()
    return {
        "success": True,
        "expired": expired,
        "expiring_soon": len(expiring),
        "message": f"Expired {expired} quotes, {len(expiring)} expiring soon",
    }


@router.get("/templates")
async def list_templates(manager: QuoteLifecycleManager = Depends(get_manager)):
    return jsonable_encoder(manager.get_templates())


@router.post("/templates", status_code=201)
async def save_template(
    body: SaveTemplateRequest,
    x_user_id: str = Header(...),
    manager: QuoteLifecycleManager = Depends(get_manager),
):
    """Save an existing quote as a template."""
    if not body.name.strip():
        raise HTTPException(status_code=400, detail="Name and quote_id are required")
    quote = manager.get_quote(body.quote_id)
    if quote is None:
        raise HTTPException(status_code=404, detail="Quote not found")
    template = manager.save_template(body.name, body.description, quote, x_user_id)
    return jsonable_encoder(template)


@router.get("/{quote_id}")
async def get_quote(
    quote_id: str,
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
    manager: QuoteLifecycleManager = Depends(get_manager),
):
    """Get a single quote. A retailer opening a sent quote marks it viewed."""
    quote = manager.get_quote(quote_id)
    if quote is None:
        raise HTTPException(status_code=404, detail="Quote not found")

    if x_user_role == 'retailer' and quote.status == QuoteStatus.SENT:
        try:
            quote = manager.update_quote_status(
                quote.id, QuoteStatus.VIEWED, x_user_id or 'unknown', 'Customer viewed the quote')
        except PricingError as e:
            raise_http(e)
    return jsonable_encoder(quote)


@router.patch("/{quote_id}")
async def update_quote(
    quote_id: str,
    body: UpdateQuoteRequest,
    x_user_id: str = Header(...),
    manager: QuoteLifecycleManager = Depends(get_manager),
):
    """Apply a status change, a revision or a named action."""
    try:
        if body.status is not None:
            quote = manager.update_quote_status(quote_id, body.status, x_user_id, body.details)
        elif body.revision is not None:
            quote = manager.add_quote_revision(quote_id, _to_changes(body.revision), x_user_id)
        elif body.action is not None:
            status, details = _action_to_status(body)
            quote = manager.update_quote_status(quote_id, status, x_user_id, details)
        else:
            raise ValidationError("No valid update provided")
    except PricingError as e:
        raise_http(e)
    return jsonable_encoder(quote)


@router.delete("/{quote_id}")
async def cancel_quote(
    quote_id: str,
    x_user_id: str = Header(...),
    manager: QuoteLifecycleManager = Depends(get_manager),
):
    """Cancel a draft quote. Quotes are never deleted."""
    try:
        manager.update_quote_status(quote_id, QuoteStatus.CANCELLED, x_user_id, 'Quote cancelled')
    except PricingError as e:
        raise_http(e)
    return {"success": True}


@router.post("/{quote_id}/convert")
async def convert_quote(quote_id: str, manager: QuoteLifecycleManager = Depends(get_manager)):
    """Convert an accepted quote into an order."""
    try:
        reference = manager.convert_quote_to_order(quote_id)
    except PricingError as e:
        raise_http(e)
    return {
        "success": True,
        "order_id": reference.order_id,
        "order_number": reference.order_number,
        "message": f"Quote successfully converted to order {reference.order_number}",
    }
