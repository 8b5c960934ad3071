"""
Centralized settings and path configuration for the pricing core.
"""
import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional


# Percentage-off-MSRP discount and minimum order value per customer tier
TIER_CONFIG = {
    'tier-1': {'label': 'Bronze', 'discount': 0.30, 'min_order_value': 500.0},
    'tier-2': {'label': 'Silver', 'discount': 0.40, 'min_order_value': 2500.0},
    'tier-3': {'label': 'Gold', 'discount': 0.50, 'min_order_value': 5000.0},
}


def get_project_root() -> Path:
    """Get the project root directory (where pyproject.toml lives)."""
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / 'pyproject.toml').exists():
            return parent
    # Fallback to 3 levels up from this file
    return Path(__file__).resolve().parent.parent.parent.parent


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value.strip() == '':
        return default
    return float(value)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == '':
        return default
    return int(value)


@dataclass
class Settings:
    """Application settings with sensible defaults."""

    # Project paths
    project_root: Path

    # Collaborator data files (optional, loaded by the API on startup)
    catalog_csv: Optional[Path] = None
    price_lists_json: Optional[Path] = None

    # Quote pricing
    tax_rate: float = 9.0  # percent
    free_shipping_threshold: float = 500.0
    flat_shipping_fee: float = 50.0
    currency: str = 'USD'

    # Quote lifecycle
    quote_validity_days: int = 30
    expiring_window_days: int = 3
    default_payment_terms: str = 'net-30'
    default_shipping_terms: str = 'fob-destination'

    # Calculator
    minimum_unit_price: float = 0.01
    tiers: dict = field(default_factory=lambda: dict(TIER_CONFIG))

    log_level: str = 'INFO'

    @classmethod
    def load(cls, project_root: Optional[Path] = None) -> 'Settings':
        """Load settings from the project structure and WHOLESALE_* env vars."""
        root = project_root or get_project_root()
        data_dir = Path(os.getenv('WHOLESALE_DATA_DIR', str(root / 'data')))

        return cls(
            project_root=root,
            catalog_csv=data_dir / 'catalog.csv',
            price_lists_json=data_dir / 'price_lists.json',
            tax_rate=_env_float('WHOLESALE_TAX_RATE', 9.0),
            free_shipping_threshold=_env_float('WHOLESALE_FREE_SHIPPING_THRESHOLD', 500.0),
            flat_shipping_fee=_env_float('WHOLESALE_FLAT_SHIPPING_FEE', 50.0),
            quote_validity_days=_env_int('WHOLESALE_QUOTE_VALIDITY_DAYS', 30),
            expiring_window_days=_env_int('WHOLESALE_EXPIRING_WINDOW_DAYS', 3),
            log_level=os.getenv('WHOLESALE_LOG_LEVEL', 'INFO').upper(),
        )


# Default settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings
