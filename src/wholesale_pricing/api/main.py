import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from ..config.settings import get_settings
from ..engine.models import PriceCalculationInput
from ..engine.pricing_engine import PricingEngine, validate_minimum_order_value
from .quotes_api import router as quotes_router
from .state import get_engine

settings = get_settings()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Wholesale Pricing API",
    description="Customer pricing calculator and quote lifecycle",
    version="1.0.0"
)

# Enable CORS for frontend development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include quote lifecycle API
app.include_router(quotes_router)


class CalcRequest(BaseModel):
    company_id: str
    product_id: str
    quantity: int = 1
    pricing_tier: str = 'tier-1'
    order_type: Optional[str] = None
    order_total: Optional[float] = None
    as_of: Optional[str] = None  # YYYY-MM-DD, defaults to today


class BulkItem(BaseModel):
    product_id: str
    quantity: int


class BulkRequest(BaseModel):
    company_id: str
    items: list[BulkItem]
    pricing_tier: str = 'tier-1'
    order_type: Optional[str] = None


@app.get("/")
async def root():
    return {"status": "online", "message": "Wholesale Pricing API Active"}


@app.post("/api/pricing/calculate")
async def calculate_price(req: CalcRequest, engine: PricingEngine = Depends(get_engine)):
    product = engine.catalog.get_product(req.product_id) if engine.catalog else None
    if product is None:
        raise HTTPException(status_code=404, detail=f"Product {req.product_id} not found")

    calculation = engine.calculate(
        PriceCalculationInput(
            product=product,
            quantity=req.quantity,
            company_id=req.company_id,
            pricing_tier=req.pricing_tier,
            order_type=req.order_type,
            order_total=req.order_total,
            as_of=req.as_of,
        ),
        engine.price_list_for(req.company_id),
    )
    return calculation.to_dict()


@app.post("/api/pricing/bulk")
async def calculate_bulk(req: BulkRequest, engine: PricingEngine = Depends(get_engine)):
    response = engine.calculate_bulk(
        company_id=req.company_id,
        pricing_tier=req.pricing_tier,
        items=[(i.product_id, i.quantity) for i in req.items],
        order_type=req.order_type,
    )
    minimum = validate_minimum_order_value(response.order_total, req.pricing_tier, engine.settings.tiers)
    return {
        "company_id": response.company_id,
        "calculations": [c.to_dict() for c in response.calculations],
        "order_subtotal": response.order_subtotal,
        "total_discount": response.total_discount,
        "order_total": response.order_total,
        "average_discount": response.average_discount,
        "missing_products": response.missing_products,
        "minimum_order": {
            "is_valid": minimum.is_valid,
            "minimum_required": minimum.minimum_required,
            "shortfall": minimum.shortfall,
        },
    }


@app.get("/system/status")
async def get_status(engine: PricingEngine = Depends(get_engine)):
    return {
        "engine_active": True,
        "catalog_products": len(engine.catalog) if engine.catalog is not None else 0,
        "tax_rate": engine.settings.tax_rate,
    }
