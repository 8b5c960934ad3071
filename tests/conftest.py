import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from wholesale_pricing.config.settings import Settings
from wholesale_pricing.engine.models import (
    CloseoutMetadata,
    PriceList,
    PriceRule,
    Product,
    TierPrice,
    VolumeBreak,
)
from wholesale_pricing.engine.pricing_engine import PricingEngine
from wholesale_pricing.quotes.lifecycle import QuoteLifecycleManager
from wholesale_pricing.services.catalog_service import (
    Company,
    CompanyDirectory,
    PriceListStore,
    ProductCatalog,
    User,
)
from wholesale_pricing.services.quote_repository import InMemoryQuoteRepository

START = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock for lifecycle tests."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def settings(tmp_path):
    return Settings(project_root=Path(tmp_path))


@pytest.fixture
def product():
    return Product(
        id='test-product',
        name='Test Product',
        sku='TEST-SKU',
        msrp=100.0,
        pricing={
            'tier-1': TierPrice(price=70),
            'tier-2': TierPrice(price=60),
            'tier-3': TierPrice(price=50),
        },
    )


@pytest.fixture
def closeout_product(product):
    return Product(
        id='closeout-product',
        name='Closeout Jacket',
        sku='CLOSE-SKU',
        msrp=100.0,
        pricing=product.pricing,
        order_type_metadata={'closeout': CloseoutMetadata(discount_percent=50, remaining_quantity=10)},
    )


@pytest.fixture
def price_list():
    return PriceList(
        id='test-pricelist',
        name='Test Price List',
        rules=(
            PriceRule(
                product_id='test-product',
                volume_breaks=(
                    VolumeBreak(min_qty=1, discount=0.30),
                    VolumeBreak(min_qty=25, discount=0.35),
                    VolumeBreak(min_qty=50, discount=0.40),
                    VolumeBreak(min_qty=100, discount=0.45),
                ),
            ),
        ),
    )


@pytest.fixture
def catalog(product, closeout_product):
    boots = Product(
        id='boots',
        name='Trail Boots',
        sku='BOOT-01',
        msrp=200.0,
        pricing={'tier-1': TierPrice(price=140)},
    )
    return ProductCatalog([product, closeout_product, boots])


@pytest.fixture
def directory():
    return CompanyDirectory(
        companies=[
            Company(id='company-1', name='Summit Outfitters', pricing_tier='tier-1'),
            Company(id='company-2', name='Valley Sports', pricing_tier='tier-2'),
        ],
        users=[
            User(id='rep-1', name='Dana Rep', email='dana@example.com', role='sales_rep'),
            User(id='buyer-1', name='Sam Buyer', email='sam@summit.example', role='retailer',
                 company_id='company-1'),
            User(id='admin-1', name='Alex Admin', role='admin'),
        ],
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def repository():
    return InMemoryQuoteRepository()


@pytest.fixture
def engine(catalog, price_list, settings, clock):
    return PricingEngine(
        catalog=catalog,
        price_lists=PriceListStore([price_list], {'company-1': price_list.id}),
        settings=settings,
        clock=clock,
    )


@pytest.fixture
def manager(repository, catalog, directory, engine, settings, clock):
    return QuoteLifecycleManager(
        repository=repository,
        catalog=catalog,
        directory=directory,
        pricing_engine=engine,
        settings=settings,
        clock=clock,
    )
