"""Quote and order number formats."""
import random
import re
import uuid

QUOTE_NUMBER_RE = re.compile(r'^QUOTE-(\d{4})-(\d{3,})$')
ORDER_NUMBER_RE = re.compile(r'^ORD-(\d{4})-(\d{5})$')


def new_id(prefix: str) -> str:
    """Opaque document id, e.g. ``quote-3f2a9c1b7d4e``."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def quote_sequence_scope(year: int) -> str:
    """Quote numbers restart every year."""
    return f"quote-{year}"


def format_quote_number(year: int, sequence: int) -> str:
    return f"QUOTE-{year}-{sequence:03d}"


def generate_order_number(year: int, rng=None) -> str:
    rng = rng or random
    return f"ORD-{year}-{rng.randint(0, 99999):05d}"
