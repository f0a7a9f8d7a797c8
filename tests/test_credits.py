import pytest
from datetime import timedelta
from conftest import MONDAY
from fitslot.errors import NotFoundError, InsufficientCreditsError, InvalidStateError, ValidationError
from fitslot.models import CreditTransaction


class TestCreditLedger:
    """Test balance changes and ledger consistency"""

    def test_adjust_credits(self, services, make_user):
        user_id = make_user()
        assert services.credits.adjust_credits(user_id, 5, 'Welcome bonus') == 5
        assert services.credits.adjust_credits(user_id, -2) == 3

        history = services.credits.get_transactions(user_id)
        assert [t['amount'] for t in history] == [-2, 5]
        assert history[0]['type'] == 'admin_adjustment'

    def test_adjust_cannot_go_negative(self, services, make_user):
        user_id = make_user(credits=1)
        with pytest.raises(InsufficientCreditsError):
            services.credits.adjust_credits(user_id, -2)
        assert services.credits.get_balance(user_id)['balance'] == 1

    @pytest.mark.parametrize('amount', [0, 1.5, None, '3'])
    def test_adjust_rejects_bad_amounts(self, services, make_user, amount):
        user_id = make_user()
        with pytest.raises(ValidationError):
            services.credits.adjust_credits(user_id, amount)

    def test_unknown_user(self, services):
        with pytest.raises(NotFoundError):
            services.credits.get_balance(999)
        with pytest.raises(NotFoundError):
            services.credits.adjust_credits(999, 3)

    def test_balance_matches_ledger_after_mixed_activity(self, services, make_block, make_user):
        block_id = make_block(days=(1, 2))
        user_id = make_user(credits=4)
        book = services.reservations.create_reservation

        first = book(user_id, block_id, MONDAY, '09:00', '10:00')
        book(user_id, block_id, MONDAY + timedelta(days=1), '08:00', '09:00')
        services.reservations.cancel_reservation(user_id, first['id'])
        services.credits.adjust_credits(user_id, -1)

        balance = services.credits.get_balance(user_id)['balance']
        transactions = services.credits.get_transactions(user_id)
        assert balance == sum(t['amount'] for t in transactions) == 2
        assert services.credits.verify_ledger(user_id)


class TestPayments:
    """Test package purchases from the payment provider"""

    @pytest.fixture
    def package(self, services):
        return services.credits.create_package(
            {'name': '10 sessions', 'credits': 10, 'bonus_credits': 1, 'price': 2500}
        )

    def test_payment_credits_package(self, services, make_user, package):
        user_id = make_user()
        balance = services.credits.add_credits_from_payment(user_id, package['id'], 'pi_123')

        assert balance == 11
        purchase = services.credits.get_transactions(user_id)[0]
        assert purchase['type'] == 'purchase'
        assert purchase['reference_id'] == package['id']

    def test_payment_replay_is_ignored(self, services, database, make_user, package):
        user_id = make_user()
        services.credits.add_credits_from_payment(user_id, package['id'], 'pi_123')
        assert services.credits.add_credits_from_payment(user_id, package['id'], 'pi_123') == 11

        with database.session() as db:
            assert db.query(CreditTransaction).filter_by(external_payment_id='pi_123').count() == 1

    def test_payment_requires_known_package_and_id(self, services, make_user):
        user_id = make_user()
        with pytest.raises(NotFoundError):
            services.credits.add_credits_from_payment(user_id, 999, 'pi_404')
        with pytest.raises(ValidationError):
            services.credits.add_credits_from_payment(user_id, 1, '')

    def test_webhook_event_credits_user(self, services, make_user, package):
        user_id = make_user()
        event = {
            'type': 'checkout.session.completed',
            'data': {'object': {
                'id': 'cs_1',
                'payment_intent': 'pi_777',
                'metadata': {'user_id': str(user_id), 'package_id': str(package['id'])}
            }}
        }
        assert services.webhooks.process_stripe_event(event)['balance'] == 11
        assert services.webhooks.process_stripe_event(event)['balance'] == 11

    def test_webhook_ignores_other_events(self, services):
        result = services.webhooks.process_stripe_event({'type': 'charge.refunded', 'data': {}})
        assert result['status'] == 'ignored'

    def test_webhook_without_metadata(self, services):
        event = {'type': 'checkout.session.completed', 'data': {'object': {'id': 'cs_2'}}}
        with pytest.raises(ValidationError):
            services.webhooks.process_stripe_event(event)


class TestPackagesPricing:
    """Test catalogue management"""

    def test_package_crud(self, services):
        package = services.credits.create_package({'name': 'Starter', 'credits': 5, 'price': 1200})
        services.credits.update_package(package['id'], {'is_active': False})

        assert services.credits.get_packages() == []
        assert len(services.credits.get_packages(active_only=False)) == 1
        assert services.credits.delete_package(package['id'])
        with pytest.raises(NotFoundError):
            services.credits.delete_package(package['id'])

    def test_package_validation(self, services):
        with pytest.raises(ValidationError):
            services.credits.create_package({'name': 'Free', 'credits': 0, 'price': 0})
        with pytest.raises(ValidationError):
            services.credits.create_package({'credits': 5, 'price': 100})

    @pytest.mark.parametrize('overrides', [
        {'price': 'abc'},
        {'price': -1},
        {'price': None},
        {'credits': '5'},
        {'bonus_credits': -2}
    ])
    def test_package_field_validation(self, services, overrides):
        data = {'name': 'Five', 'credits': 5, 'price': 500}
        data.update(overrides)
        with pytest.raises(ValidationError):
            services.credits.create_package(data)

    def test_updates_are_validated(self, services):
        package = services.credits.create_package({'name': 'Five', 'credits': 5, 'price': 500})
        item = services.credits.create_pricing_item({'name': 'Single', 'credits': 1})

        with pytest.raises(ValidationError):
            services.credits.update_package(package['id'], {'credits': -3})
        with pytest.raises(ValidationError):
            services.credits.update_package(package['id'], {'price': 'abc'})
        with pytest.raises(ValidationError):
            services.credits.update_pricing_item(item['id'], {'credits': 0})
        with pytest.raises(ValidationError):
            services.credits.update_pricing_item(item['id'], {'duration_minutes': -30})

        assert services.credits.update_package(package['id'], {'price': '750'})['price'] == 750.0
        assert services.credits.get_package(package['id'])['credits'] == 5

    def test_pricing_items(self, services):
        item = services.credits.create_pricing_item({'name': 'Single', 'credits': 1})
        assert item['duration_minutes'] == 60
        updated = services.credits.update_pricing_item(item['id'], {'credits': 2, 'unknown': 'ignored'})
        assert updated['credits'] == 2
        with pytest.raises(NotFoundError):
            services.credits.update_pricing_item(999, {'credits': 2})


class TestTrainingPlans:
    """Test training plans bought with credits"""

    @pytest.fixture
    def plan(self, services):
        return services.plans.create_plan({
            'name': 'Strength 8 weeks', 'credits': 3, 'price': 900, 'validity_days': 56
        })

    def test_purchase_plan(self, services, make_user, plan):
        user_id = make_user(credits=5)
        purchase = services.plans.purchase_plan(user_id, plan['id'])

        assert purchase['plan_id'] == plan['id']
        assert purchase['credits_used'] == 3
        assert purchase['balance'] == 2
        assert purchase['purchase_date'] == '2031-03-03'
        assert purchase['expiry_date'] == '2031-04-28'

        transaction = services.credits.get_transactions(user_id)[0]
        assert transaction['type'] == 'plan_purchase'
        assert transaction['amount'] == -3
        assert transaction['reference_id'] == plan['id']
        assert services.credits.verify_ledger(user_id)
        assert [p['plan_name'] for p in services.plans.get_user_plans(user_id)] == ['Strength 8 weeks']

    def test_price_comes_from_plan(self, services, make_user, plan):
        user_id = make_user(credits=2)
        with pytest.raises(InsufficientCreditsError):
            services.plans.purchase_plan(user_id, plan['id'])
        assert services.plans.get_user_plans(user_id) == []
        assert services.credits.get_balance(user_id)['balance'] == 2

    def test_purchase_rules(self, services, make_user, plan):
        user_id = make_user(credits=10)
        services.plans.purchase_plan(user_id, plan['id'])

        with pytest.raises(InvalidStateError):
            services.plans.purchase_plan(user_id, plan['id'])
        with pytest.raises(NotFoundError):
            services.plans.purchase_plan(user_id, 999)

        services.plans.update_plan(plan['id'], {'is_active': False})
        other = make_user(credits=10)
        with pytest.raises(InvalidStateError):
            services.plans.purchase_plan(other, plan['id'])
        assert services.credits.get_balance(user_id)['balance'] == 7

    def test_plan_catalogue(self, services, make_user, plan):
        with pytest.raises(ValidationError):
            services.plans.create_plan({'name': 'Free', 'credits': 0})
        with pytest.raises(ValidationError):
            services.plans.update_plan(plan['id'], {'validity_days': 0})

        spare = services.plans.create_plan({'name': 'Mobility', 'credits': 1})
        services.plans.delete_plan(spare['id'])
        with pytest.raises(NotFoundError):
            services.plans.get_plan(spare['id'])

        services.plans.purchase_plan(make_user(credits=3), plan['id'])
        services.plans.delete_plan(plan['id'])
        assert services.plans.get_plan(plan['id'])['is_active'] is False
        assert services.plans.list_plans() == []
