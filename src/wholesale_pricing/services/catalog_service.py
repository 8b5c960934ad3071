"""
Catalog Service - product catalog, price lists and company directory.

These are collaborators of the pricing core. They are kept in memory and can
be loaded from a catalog CSV and a price-list JSON file.
"""
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

import pandas as pd

from ..engine.models import CloseoutMetadata, OrderType, PriceList, Product, TierPrice

logger = logging.getLogger(__name__)

TIER_PRICE_SUFFIX = '_price'


class ProductCatalog:
    """Read-only product lookup."""

    def __init__(self, products: Iterable[Product] = ()):
        self._products = {p.id: p for p in products}

    def __len__(self) -> int:
        return len(self._products)

    def get_product(self, product_id: str) -> Optional[Product]:
        return self._products.get(str(product_id).strip())

    def list_products(self) -> list[Product]:
        return list(self._products.values())

    @classmethod
    def from_records(cls, records: Iterable[dict]) -> 'ProductCatalog':
        return cls(Product.from_dict(r) for r in records)

    @classmethod
    def from_csv(cls, path: Path) -> 'ProductCatalog':
        """
        Load products from a catalog CSV.

        Expected columns: id, msrp, and optionally name, sku,
        ``<tier>_price`` columns (e.g. ``tier-1_price``) and
        closeout_discount_percent.
        """
        df = pd.read_csv(path, dtype={'id': str, 'sku': str})
        df['id'] = df['id'].str.strip()
        df = df.dropna(subset=['id']).drop_duplicates('id')

        tier_columns = [c for c in df.columns if c.endswith(TIER_PRICE_SUFFIX)]
        products = []
        for _, row in df.iterrows():
            pricing = {}
            for col in tier_columns:
                if pd.notna(row[col]):
                    pricing[col[:-len(TIER_PRICE_SUFFIX)]] = TierPrice(price=float(row[col]))

            metadata = {}
            closeout_pct = row.get('closeout_discount_percent')
            if closeout_pct is not None and pd.notna(closeout_pct):
                metadata[OrderType.CLOSEOUT.value] = CloseoutMetadata(discount_percent=float(closeout_pct))

            products.append(Product(
                id=row['id'],
                msrp=float(row['msrp']) if pd.notna(row['msrp']) else 0.0,
                name=row['name'] if 'name' in row and pd.notna(row['name']) else '',
                sku=row['sku'] if 'sku' in row and pd.notna(row['sku']) else '',
                pricing=pricing or None,
                order_type_metadata=metadata,
            ))

        logger.info("Loaded %d products from %s", len(products), path)
        return cls(products)


class PriceListStore:
    """Price lists and their assignment to companies."""

    def __init__(self, price_lists: Iterable[PriceList] = (), assignments: Optional[dict[str, str]] = None):
        self._price_lists = {pl.id: pl for pl in price_lists}
        self._assignments = dict(assignments or {})

    def get(self, price_list_id: str) -> Optional[PriceList]:
        return self._price_lists.get(price_list_id)

    def assign(self, company_id: str, price_list_id: str):
        if price_list_id not in self._price_lists:
            raise KeyError(f"Price list '{price_list_id}' not found")
        self._assignments[company_id] = price_list_id

    def for_company(self, company_id: str) -> Optional[PriceList]:
        """
        Resolve the price list for a company.

        1. Explicit assignment
        2. A price list declaring that company
        3. None (tier-only pricing)
        """
        assigned = self._assignments.get(company_id)
        if assigned:
            return self._price_lists.get(assigned)

        for price_list in self._price_lists.values():
            if price_list.company_id == company_id:
                return price_list
        return None

    @classmethod
    def from_json(cls, path: Path) -> 'PriceListStore':
        """Load ``{"priceLists": [...], "assignments": {company: list}}``."""
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        price_lists = [PriceList.from_dict(raw) for raw in data.get('priceLists', [])]
        logger.info("Loaded %d price lists from %s", len(price_lists), path)
        return cls(price_lists, data.get('assignments', {}))


@dataclass
class Company:
    id: str
    name: str
    pricing_tier: str = 'tier-1'


@dataclass
class User:
    id: str
    name: str
    email: str = ''
    role: str = 'sales_rep'  # sales_rep, retailer, admin
    company_id: Optional[str] = None


class CompanyDirectory:
    """Company and user lookup used to resolve names on quotes."""

    def __init__(self, companies: Iterable[Company] = (), users: Iterable[User] = ()):
        self._companies = {c.id: c for c in companies}
        self._users = {u.id: u for u in users}

    def get_company(self, company_id: str) -> Optional[Company]:
        return self._companies.get(company_id)

    def get_user(self, user_id: Optional[str]) -> Optional[User]:
        if not user_id:
            return None
        return self._users.get(user_id)
