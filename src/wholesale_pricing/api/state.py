"""
Shared API state - the pricing engine and lifecycle manager used by routes.

Collaborator data is loaded from the settings' data files when present.
Routes get these through FastAPI dependencies so tests can override them.
"""
import logging
from typing import Optional

from ..config.settings import Settings, get_settings
from ..engine.pricing_engine import PricingEngine
from ..quotes.lifecycle import QuoteLifecycleManager
from ..services.catalog_service import CompanyDirectory, PriceListStore, ProductCatalog
from ..services.quote_repository import InMemoryQuoteRepository

logger = logging.getLogger(__name__)


def build_manager(settings: Optional[Settings] = None,
                  directory: Optional[CompanyDirectory] = None) -> QuoteLifecycleManager:
    """Wire the engine, repository and collaborators together."""
    settings = settings or get_settings()

    catalog = ProductCatalog()
    if settings.catalog_csv and settings.catalog_csv.exists():
        catalog = ProductCatalog.from_csv(settings.catalog_csv)
    else:
        logger.warning("No catalog found at %s, starting with an empty catalog", settings.catalog_csv)

    price_lists = PriceListStore()
    if settings.price_lists_json and settings.price_lists_json.exists():
        price_lists = PriceListStore.from_json(settings.price_lists_json)

    engine = PricingEngine(catalog=catalog, price_lists=price_lists, settings=settings)
    return QuoteLifecycleManager(
        repository=InMemoryQuoteRepository(),
        catalog=catalog,
        directory=directory or CompanyDirectory(),
        pricing_engine=engine,
        settings=settings,
    )


_manager: Optional[QuoteLifecycleManager] = None


def get_manager() -> QuoteLifecycleManager:
    """Get the process-wide lifecycle manager."""
    global _manager
    if _manager is None:
        _manager = build_manager()
    return _manager


def get_engine() -> PricingEngine:
    return get_manager().pricing_engine
