from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

from wholesale_pricing.api.main import app
from wholesale_pricing.api.state import get_engine, get_manager
from wholesale_pricing.engine.models import PriceRule

REP = {'x-user-id': 'rep-1'}
BUYER = {'x-user-id': 'buyer-1', 'x-user-role': 'retailer'}


@pytest.fixture
def client(manager, engine):
    app.dependency_overrides[get_manager] = lambda: manager
    app.dependency_overrides[get_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()


def create(client, quantity=2, **extra):
    body = {'company_id': 'company-1', 'items': [{'product_id': 'test-product', 'quantity': quantity}]}
    body.update(extra)
    response = client.post('/api/quotes', json=body, headers=REP)
    assert response.status_code == 201
    return response.json()


def patch(client, quote_id, body, headers=REP):
    return client.patch(f'/api/quotes/{quote_id}', json=body, headers=headers)


class TestPricingRoutes:

    def test_root(self, client):
        assert client.get('/').json()['status'] == 'online'

    def test_calculate(self, client):
        response = client.post('/api/pricing/calculate', json={
            'company_id': 'company-1', 'product_id': 'test-product', 'quantity': 25,
        })
        data = response.json()

        assert response.status_code == 200
        assert data['unitPrice'] == pytest.approx(65)
        assert data['priceListId'] == 'test-pricelist'
        assert [b['type'] for b in data['breakdown']] == ['base', 'tier', 'volume']

    def test_calculate_unknown_product(self, client):
        response = client.post('/api/pricing/calculate', json={'company_id': 'company-1', 'product_id': 'ghost'})
        assert response.status_code == 404

    def test_calculate_honours_rule_dates(self, client, engine, price_list, clock):
        engine.price_lists._price_lists['test-pricelist'] = replace(price_list, rules=(
            PriceRule(product_id='test-product', fixed_price=45,
                      effective_from='2026-03-01', effective_to='2026-05-31'),
        ))
        body = {'company_id': 'company-1', 'product_id': 'test-product'}

        assert client.post('/api/pricing/calculate', json=body).json()['appliedDiscounts'] == ['override']

        clock.advance(days=120)
        data = client.post('/api/pricing/calculate', json=body).json()
        assert data['appliedDiscounts'] == ['tier']
        assert data['unitPrice'] == pytest.approx(70)

        body['as_of'] = '2026-04-15'
        assert client.post('/api/pricing/calculate', json=body).json()['unitPrice'] == 45

    def test_bulk(self, client):
        response = client.post('/api/pricing/bulk', json={
            'company_id': 'company-1',
            'items': [{'product_id': 'test-product', 'quantity': 2}, {'product_id': 'ghost', 'quantity': 1}],
        })
        data = response.json()

        assert data['order_total'] == pytest.approx(140)
        assert data['missing_products'] == ['ghost']
        assert data['minimum_order'] == {'is_valid': False, 'minimum_required': 500, 'shortfall': 360}

    def test_system_status(self, client):
        data = client.get('/system/status').json()

        assert data['catalog_products'] == 3
        assert data['tax_rate'] == 9.0


class TestQuoteRoutes:

    def test_create_quote(self, client):
        quote = create(client)

        assert quote['number'] == 'QUOTE-2026-001'
        assert quote['status'] == 'draft'
        assert quote['pricing']['total'] == pytest.approx(202.6)
        assert quote['timeline'][0]['type'] == 'created'

    def test_create_and_send(self, client):
        assert create(client, send_immediately=True)['status'] == 'sent'

    def test_create_requires_user(self, client):
        response = client.post('/api/quotes', json={
            'company_id': 'company-1', 'items': [{'product_id': 'test-product', 'quantity': 1}],
        })
        assert response.status_code == 422

    def test_create_without_items(self, client):
        response = client.post('/api/quotes', json={'company_id': 'company-1', 'items': []}, headers=REP)
        assert response.status_code == 400

    def test_create_unknown_product(self, client):
        response = client.post('/api/quotes', json={
            'company_id': 'company-1', 'items': [{'product_id': 'ghost', 'quantity': 1}],
        }, headers=REP)
        assert response.status_code == 404

    def test_get_missing_quote(self, client):
        assert client.get('/api/quotes/quote-missing').status_code == 404

    def test_retailer_view_marks_sent_quote_viewed(self, client):
        quote = create(client, send_immediately=True)

        assert client.get(f"/api/quotes/{quote['id']}", headers=REP).json()['status'] == 'sent'
        viewed = client.get(f"/api/quotes/{quote['id']}", headers=BUYER).json()
        assert viewed['status'] == 'viewed'
        assert viewed['timeline'][-1]['user_name'] == 'Sam Buyer'

    def test_status_patch(self, client):
        quote = create(client)
        response = patch(client, quote['id'], {'status': 'sent', 'details': 'Emailed'})

        assert response.status_code == 200
        assert response.json()['timeline'][-1]['details'] == 'Emailed'

    def test_invalid_transition_is_conflict(self, client):
        quote = create(client)
        assert patch(client, quote['id'], {'action': 'accept'}, BUYER).status_code == 409

    def test_reject_requires_reason(self, client):
        quote = create(client, send_immediately=True)

        assert patch(client, quote['id'], {'action': 'reject'}, BUYER).status_code == 400
        response = patch(client, quote['id'], {'action': 'reject', 'reason': 'Too expensive'}, BUYER)
        assert response.json()['status'] == 'rejected'
        assert response.json()['timeline'][-1]['details'] == 'Too expensive'

    def test_request_revision_requires_notes(self, client):
        quote = create(client, send_immediately=True)

        assert patch(client, quote['id'], {'action': 'request-revision'}, BUYER).status_code == 400
        response = patch(client, quote['id'], {'action': 'request-revision', 'revision_notes': 'Net 60?'}, BUYER)
        assert response.json()['status'] == 'revised'

    def test_unknown_action_and_empty_patch(self, client):
        quote = create(client)

        assert patch(client, quote['id'], {'action': 'archive'}).status_code == 400
        assert patch(client, quote['id'], {}).status_code == 400

    def test_revision_patch(self, client):
        quote = create(client)
        response = patch(client, quote['id'], {'revision': {
            'items': [{
                'id': 'item-1', 'product_id': 'test-product', 'quantity': 3,
                'unit_price': 60, 'original_price': 100, 'discount': 40,
            }],
            'terms': {'payment_terms': 'net-60'},
        }})
        data = response.json()

        assert response.status_code == 200
        assert data['current_version'] == 2
        assert data['items'][0]['total'] == pytest.approx(180)
        assert data['terms']['payment_terms'] == 'net-60'
        assert len(data['versions']) == 1

    def test_revision_with_unknown_terms(self, client):
        quote = create(client)
        response = patch(client, quote['id'], {'revision': {'terms': {'coupon': 'X'}}})
        assert response.status_code == 422

    def test_revision_with_bad_date(self, client):
        quote = create(client)
        response = patch(client, quote['id'], {'revision': {'terms': {'valid_until': 'soon'}}})
        assert response.status_code == 422

    def test_revised_validity_is_stored_as_datetime(self, client, manager, clock):
        quote = create(client)
        response = patch(client, quote['id'], {'revision': {'terms': {'valid_until': '2026-03-20T00:00:00Z'}}})
        assert response.status_code == 200
        assert response.json()['terms']['payment_terms'] == 'net-30'
        patch(client, quote['id'], {'action': 'send'})

        assert manager.get_quote(quote['id']).terms.valid_until.tzinfo is not None

        clock.advance(days=16)
        assert client.get('/api/quotes/expiring').json()['count'] == 1

        clock.advance(days=2)
        data = client.post('/api/quotes/check-expiration').json()
        assert data['expired'] == 1
        assert client.get(f"/api/quotes/{quote['id']}").json()['status'] == 'expired'

    def test_cancel(self, client):
        quote = create(client)

        assert client.delete(f"/api/quotes/{quote['id']}", headers=REP).json() == {'success': True}
        assert client.get(f"/api/quotes/{quote['id']}").json()['status'] == 'cancelled'
        assert client.delete(f"/api/quotes/{quote['id']}", headers=REP).status_code == 409

    def test_convert_is_idempotent(self, client):
        quote = create(client, send_immediately=True)

        assert client.post(f"/api/quotes/{quote['id']}/convert").status_code == 409
        patch(client, quote['id'], {'action': 'accept'}, BUYER)

        first = client.post(f"/api/quotes/{quote['id']}/convert").json()
        second = client.post(f"/api/quotes/{quote['id']}/convert").json()

        assert first['success'] is True
        assert first['order_number'].startswith('ORD-2026-')
        assert first['order_number'] == second['order_number']
        assert first['order_id'] == second['order_id']

    def test_convert_missing_quote(self, client):
        assert client.post('/api/quotes/quote-missing/convert').status_code == 404

    def test_list_with_filters(self, client):
        draft = create(client)
        sent = create(client, send_immediately=True)

        data = client.get('/api/quotes', params={'status': 'draft,sent'}).json()
        assert data['total'] == 2
        assert data['summary']['total_quotes'] == 2

        only_sent = client.get('/api/quotes', params={'status': 'sent'}).json()
        assert [q['id'] for q in only_sent['quotes']] == [sent['id']]

        found = client.get('/api/quotes', params={'search': draft['number']}).json()
        assert [q['id'] for q in found['quotes']] == [draft['id']]

    def test_list_with_bad_status(self, client):
        assert client.get('/api/quotes', params={'status': 'archived'}).status_code == 400

    def test_expiration_routes(self, client, clock):
        create(client, send_immediately=True)

        clock.advance(days=28)
        assert client.get('/api/quotes/expiring').json()['count'] == 1

        clock.advance(days=3)
        data = client.post('/api/quotes/check-expiration').json()
        assert data['expired'] == 1
        assert data['expiring_soon'] == 0

    def test_templates(self, client):
        quote = create(client)

        response = client.post('/api/quotes/templates', json={
            'name': 'Standard', 'quote_id': quote['id'],
        }, headers=REP)
        assert response.status_code == 201
        assert response.json()['items'][0]['product_id'] == 'test-product'

        assert len(client.get('/api/quotes/templates').json()) == 1
        missing = client.post('/api/quotes/templates', json={'name': 'X', 'quote_id': 'nope'}, headers=REP)
        assert missing.status_code == 404
