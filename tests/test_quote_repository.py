import threading

import pytest

from wholesale_pricing.exceptions import ConcurrencyConflictError
from wholesale_pricing.quotes.models import QuoteRequest, QuoteRequestItem


@pytest.fixture
def quote(manager):
    request = QuoteRequest(
        company_id='company-1',
        items=[QuoteRequestItem(product_id='test-product', quantity=1)],
    )
    return manager.create_quote(request, 'rep-1')


class TestInMemoryQuoteRepository:

    def test_insert_sets_row_version(self, quote):
        assert quote.row_version == 1

    def test_save_bumps_row_version(self, repository, quote):
        quote.tags.append('vip')
        saved = repository.save(quote, expected_row_version=1)

        assert saved.row_version == 2
        assert repository.find(quote.id).tags == ['vip']

    def test_stale_write_is_rejected(self, repository, quote):
        first = repository.find(quote.id)
        second = repository.find(quote.id)

        first.tags.append('first')
        repository.save(first, first.row_version)

        second.tags.append('second')
        with pytest.raises(ConcurrencyConflictError) as exc:
            repository.save(second, second.row_version)

        assert exc.value.expected == 1
        assert exc.value.actual == 2
        assert repository.find(quote.id).tags == ['first']

    def test_insert_of_existing_id_conflicts(self, repository, quote):
        with pytest.raises(ConcurrencyConflictError):
            repository.save(quote, expected_row_version=None)

    def test_returns_private_copies(self, repository, quote):
        loaded = repository.find(quote.id)
        loaded.items.clear()
        loaded.timeline.clear()

        stored = repository.find(quote.id)
        assert len(stored.items) == 1
        assert len(stored.timeline) == 1

    def test_find_missing(self, repository):
        assert repository.find('quote-missing') is None

    def test_sequences_are_per_scope(self, repository):
        assert repository.next_sequence('quote-2026') == 1
        assert repository.next_sequence('quote-2026') == 2
        assert repository.next_sequence('quote-2027') == 1

    def test_sequences_are_unique_across_threads(self, repository):
        results = []
        lock = threading.Lock()

        def worker():
            for _ in range(50):
                value = repository.next_sequence('quote-2026')
                with lock:
                    results.append(value)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(results) == list(range(1, 401))

    def test_only_one_concurrent_writer_wins(self, repository, quote):
        outcomes = []
        barrier = threading.Barrier(6)

        def worker(tag):
            copy = repository.find(quote.id)
            copy.tags.append(tag)
            barrier.wait()
            try:
                repository.save(copy, copy.row_version)
                outcomes.append('saved')
            except ConcurrencyConflictError:
                outcomes.append('conflict')

        threads = [threading.Thread(target=worker, args=(f"t{i}",)) for i in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count('saved') == 1
        assert outcomes.count('conflict') == 5
        assert len(repository.find(quote.id).tags) == 1
