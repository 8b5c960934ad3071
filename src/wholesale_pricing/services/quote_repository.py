"""
Quote Repository - storage boundary for quotes, templates and sequences.

The lifecycle manager only talks to the QuoteRepository interface. The
in-memory implementation is thread-safe and enforces optimistic concurrency
with a compare-and-swap on ``Quote.row_version``.
"""
import copy
import logging
import threading
from abc import ABC, abstractmethod
from typing import Optional

from ..exceptions import ConcurrencyConflictError
from ..quotes.models import Quote, QuoteFilter, QuoteTemplate

logger = logging.getLogger(__name__)


class QuoteRepository(ABC):
    """Persistence interface for quote documents."""

    @abstractmethod
    def find(self, quote_id: str) -> Optional[Quote]:
        """Return a private copy of the quote, or None."""

    @abstractmethod
    def save(self, quote: Quote, expected_row_version: Optional[int]) -> Quote:
        """
        Insert or update a quote.

        ``expected_row_version=None`` inserts a new quote. Otherwise the
        stored quote must still carry ``expected_row_version``; if it does
        not, ConcurrencyConflictError is raised and nothing is written.
        Returns the stored copy with its bumped ``row_version``.
        """

    @abstractmethod
    def list_by_filter(self, quote_filter: Optional[QuoteFilter] = None) -> list[Quote]:
        """Quotes matching the filter, newest first."""

    @abstractmethod
    def next_sequence(self, scope: str) -> int:
        """Atomically increment and return the counter for ``scope``."""

    @abstractmethod
    def find_template(self, template_id: str) -> Optional[QuoteTemplate]:
        ...

    @abstractmethod
    def save_template(self, template: QuoteTemplate) -> QuoteTemplate:
        ...

    @abstractmethod
    def list_templates(self) -> list[QuoteTemplate]:
        ...


class InMemoryQuoteRepository(QuoteRepository):
    """Process-local repository. Hands out deep copies so callers never share state."""

    def __init__(self):
        self._lock = threading.Lock()
        self._quotes: dict[str, Quote] = {}
        self._templates: dict[str, QuoteTemplate] = {}
        self._sequences: dict[str, int] = {}

    def find(self, quote_id: str) -> Optional[Quote]:
        with self._lock:
            quote = self._quotes.get(quote_id)
            return copy.deepcopy(quote) if quote is not None else None

    def save(self, quote: Quote, expected_row_version: Optional[int]) -> Quote:
        with self._lock:
            current = self._quotes.get(quote.id)
            actual = current.row_version if current is not None else None

            if actual != expected_row_version:
                logger.warning(
                    "Row version conflict on %s: expected %s, found %s",
                    quote.id, expected_row_version, actual,
                )
                raise ConcurrencyConflictError(
                    quote.id,
                    expected_row_version if expected_row_version is not None else 0,
                    actual if actual is not None else 0,
                )

            stored = copy.deepcopy(quote)
            stored.row_version = (actual or 0) + 1
            self._quotes[quote.id] = stored
            return copy.deepcopy(stored)

    def list_by_filter(self, quote_filter: Optional[QuoteFilter] = None) -> list[Quote]:
        with self._lock:
            quotes = [
                copy.deepcopy(q) for q in self._quotes.values()
                if quote_filter is None or quote_filter.matches(q)
            ]
        return sorted(quotes, key=lambda q: q.created_at, reverse=True)

    def next_sequence(self, scope: str) -> int:
        with self._lock:
            value = self._sequences.get(scope, 0) + 1
            self._sequences[scope] = value
            return value

    def find_template(self, template_id: str) -> Optional[QuoteTemplate]:
        with self._lock:
            template = self._templates.get(template_id)
            return copy.deepcopy(template) if template is not None else None

    def save_template(self, template: QuoteTemplate) -> QuoteTemplate:
        with self._lock:
            self._templates[template.id] = copy.deepcopy(template)
            return copy.deepcopy(template)

    def list_templates(self) -> list[QuoteTemplate]:
        with self._lock:
            templates = [copy.deepcopy(t) for t in self._templates.values()]
        return sorted(templates, key=lambda t: t.created_at)
