import pytest
from unittest.mock import patch
from conftest import MONDAY, auth_header
from fitslot.models.user import UserRole


@pytest.fixture
def container(app):
    return app.extensions['fitslot']


@pytest.fixture
def users(container):
    admin = container.users.create_user('coach@example.com', role=UserRole.ADMIN)['id']
    client = container.users.create_user('client@example.com')['id']
    container.credits.adjust_credits(client, 2)
    return {'admin': auth_header(admin, 'admin'), 'client': auth_header(client), 'client_id': client}


@pytest.fixture
def block_id(container):
    return container.blocks.create_block({
        'start_time': '08:00', 'end_time': '12:00', 'slot_duration_minutes': 60, 'days_of_week': [1]
    })['id']


class TestPublicRoutes:
    """Test authentication and health endpoints"""

    def test_health(self, http):
        response = http.get('/api/health')
        assert response.status_code == 200
        assert response.get_json()['status'] == 'healthy'

    def test_missing_or_bad_token(self, http):
        assert http.get('/api/credits/balance').status_code == 401
        response = http.get('/api/credits/balance', headers={'Authorization': 'Bearer nonsense'})
        assert response.status_code == 401

    def test_admin_only(self, http, users):
        response = http.get('/api/admin/clients', headers=users['client'])
        assert response.status_code == 403


class TestClientRoutes:
    """Test the client booking flow over HTTP"""

    def test_availability(self, http, users, block_id):
        response = http.get(f'/api/availability?date={MONDAY.isoformat()}', headers=users['client'])
        assert response.status_code == 200
        assert [s['start_time'] for s in response.get_json()['slots']] == ['08:00', '09:00', '10:00', '11:00']

    def test_availability_bad_date(self, http, users):
        response = http.get('/api/availability?date=tomorrow', headers=users['client'])
        assert response.status_code == 400
        assert response.get_json()['code'] == 'VALIDATION_ERROR'

    def test_book_and_cancel(self, http, users, block_id):
        payload = {'block_id': block_id, 'date': MONDAY.isoformat(), 'start_time': '09:00', 'end_time': '10:00'}
        response = http.post('/api/reservations', json=payload, headers=users['client'])
        assert response.status_code == 201
        reservation_id = response.get_json()['id']

        retry = http.post('/api/reservations', json=payload, headers=users['client'])
        assert retry.status_code == 409
        assert retry.get_json()['code'] == 'SLOT_UNAVAILABLE'

        balance = http.get('/api/credits/balance', headers=users['client']).get_json()
        assert balance['balance'] == 1

        upcoming = http.get('/api/reservations/upcoming', headers=users['client']).get_json()
        assert [r['id'] for r in upcoming['reservations']] == [reservation_id]

        response = http.post(f'/api/reservations/{reservation_id}/cancel', headers=users['client'])
        assert response.status_code == 200
        response = http.post(f'/api/reservations/{reservation_id}/cancel', headers=users['client'])
        assert response.status_code == 409
        assert response.get_json()['code'] == 'ALREADY_CANCELLED'

    def test_insufficient_credits_status(self, http, container, block_id):
        broke = container.users.create_user('broke@example.com')['id']
        payload = {'block_id': block_id, 'date': MONDAY.isoformat(), 'start_time': '09:00', 'end_time': '10:00'}

        response = http.post('/api/reservations', json=payload, headers=auth_header(broke))
        assert response.status_code == 402
        assert response.get_json()['details'] == {'required': 1, 'available': 0}

    def test_string_ids_are_accepted(self, http, users, block_id):
        payload = {'block_id': str(block_id), 'date': MONDAY.isoformat(), 'start_time': '09:00', 'end_time': '10:00'}
        response = http.post('/api/reservations', json=payload, headers=users['client'])
        assert response.status_code == 201
        assert response.get_json()['block_id'] == block_id

        payload['block_id'] = 'first'
        response = http.post('/api/reservations', json=payload, headers=users['client'])
        assert response.status_code == 400
        assert response.get_json()['code'] == 'VALIDATION_ERROR'

    def test_buy_plan(self, http, users, container):
        plan = container.plans.create_plan({'name': 'Core', 'credits': 2})
        assert [p['id'] for p in http.get('/api/plans', headers=users['client']).get_json()['plans']] == [plan['id']]

        response = http.post(f"/api/plans/{plan['id']}/purchase", headers=users['client'])
        assert response.status_code == 201
        assert response.get_json()['balance'] == 0

        again = http.post(f"/api/plans/{plan['id']}/purchase", headers=users['client'])
        assert again.status_code == 409
        mine = http.get('/api/plans/mine', headers=users['client']).get_json()['purchases']
        assert [p['plan_id'] for p in mine] == [plan['id']]

    def test_missing_fields(self, http, users):
        response = http.post('/api/reservations', json={'date': MONDAY.isoformat()}, headers=users['client'])
        assert response.status_code == 400

    def test_cancel_someone_elses_reservation(self, http, users, container, block_id):
        other = container.users.create_user('other@example.com')['id']
        container.credits.adjust_credits(other, 1)
        reservation = container.reservations.create_reservation(other, block_id, MONDAY, '09:00', '10:00')

        response = http.post(f"/api/reservations/{reservation['id']}/cancel", headers=users['client'])
        assert response.status_code == 403
        assert response.get_json()['code'] == 'NOT_OWNER'


class TestAdminRoutes:
    """Test admin endpoints"""

    def test_slot_workflow(self, http, users):
        admin = users['admin']
        created = http.post('/api/admin/slots', json={
            'date': MONDAY.isoformat(), 'start_time': '09:00', 'duration_minutes': 60
        }, headers=admin)
        assert created.status_code == 201
        slot_id = created.get_json()['id']

        assert http.post(f'/api/admin/slots/{slot_id}/unlock', headers=admin).get_json()['status'] == 'unlocked'

        booked = http.post('/api/admin/reservations', json={
            'slot_id': slot_id, 'user_id': users['client_id'], 'deduct_credits': True
        }, headers=admin)
        assert booked.status_code == 201

        locked = http.post(f'/api/admin/slots/{slot_id}/lock', headers=admin)
        assert locked.status_code == 409
        assert locked.get_json()['code'] == 'INVALID_STATE'

        cancelled = http.post(
            f"/api/admin/reservations/{booked.get_json()['id']}/cancel",
            json={'refund_credits': False}, headers=admin
        )
        assert cancelled.get_json()['status'] == 'cancelled'

        listing = http.get(
            f'/api/admin/slots?start_date={MONDAY.isoformat()}&end_date={MONDAY.isoformat()}', headers=admin
        ).get_json()
        assert listing['slots'][0]['status'] == 'cancelled'

    def test_template_apply_and_unlock_week(self, http, users):
        admin = users['admin']
        template = http.post('/api/admin/templates', json={
            'name': 'Mornings',
            'slots': [{'day_of_week': 2, 'start_time': '07:00', 'end_time': '08:00'}]
        }, headers=admin).get_json()

        applied = http.post(
            f"/api/admin/templates/{template['id']}/apply",
            json={'week_start': MONDAY.isoformat()}, headers=admin
        )
        assert applied.get_json()['created_count'] == 1

        unlocked = http.post('/api/admin/week/unlock', json={'week_start': MONDAY.isoformat()}, headers=admin)
        assert unlocked.get_json() == {'unlocked_count': 1}

    def test_block_overlap_error_code(self, http, users, block_id):
        response = http.post('/api/admin/blocks', json={
            'start_time': '11:00', 'end_time': '13:00', 'slot_duration_minutes': 60, 'days_of_week': [1]
        }, headers=users['admin'])
        assert response.status_code == 400
        assert response.get_json()['code'] == 'BLOCK_OVERLAP'

    def test_adjust_credits(self, http, users):
        response = http.post(
            f"/api/admin/users/{users['client_id']}/credits",
            json={'amount': 5, 'note': 'Cash payment'}, headers=users['admin']
        )
        assert response.get_json()['balance'] == 7

    def test_calendar(self, http, users, container, block_id):
        container.reservations.create_reservation(users['client_id'], block_id, MONDAY, '10:00', '11:00')
        response = http.get(
            f'/api/admin/calendar?start_date={MONDAY.isoformat()}&end_date={MONDAY.isoformat()}',
            headers=users['admin']
        )
        assert response.status_code == 200
        slots = response.get_json()['slots']
        assert [s['status'] for s in slots] == ['available', 'available', 'reserved', 'available']
        assert slots[2]['reservation']['user_email'] == 'client@example.com'

    def test_bad_catalogue_values(self, http, users):
        response = http.post('/api/admin/packages', json={'name': 'Five', 'credits': 5, 'price': 'abc'},
                             headers=users['admin'])
        assert response.status_code == 400
        assert response.get_json()['code'] == 'VALIDATION_ERROR'

        response = http.post('/api/admin/reservations', json={'slot_id': 'x', 'user_id': 1},
                             headers=users['admin'])
        assert response.status_code == 400

    def test_unknown_resource(self, http, users):
        response = http.post('/api/admin/slots/999/lock', headers=users['admin'])
        assert response.status_code == 404
        assert response.get_json() == {'error': 'Slot not found', 'code': 'NOT_FOUND'}


class TestStripeWebhook:
    """Test payment webhook handling"""

    def test_requires_signature(self, http):
        assert http.post('/api/webhooks/stripe', data=b'{}').status_code == 400

    @patch('fitslot.integrations.stripe_client.stripe')
    def test_completed_checkout_credits_user(self, mock_stripe, http, users, container):
        package = container.credits.create_package({'name': 'Five', 'credits': 5, 'price': 1000})
        mock_stripe.Webhook.construct_event.return_value = {
            'type': 'checkout.session.completed',
            'data': {'object': {
                'id': 'cs_test',
                'payment_intent': 'pi_test',
                'metadata': {'user_id': str(users['client_id']), 'package_id': str(package['id'])}
            }}
        }

        for _ in range(2):
            response = http.post('/api/webhooks/stripe', data=b'{}', headers={'Stripe-Signature': 'sig'})
            assert response.status_code == 200

        assert container.credits.get_balance(users['client_id'])['balance'] == 7
