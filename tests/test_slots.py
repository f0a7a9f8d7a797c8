import pytest
from datetime import timedelta
from conftest import MONDAY, run_concurrently
from fitslot.errors import NotFoundError, InvalidStateError, ValidationError, InsufficientCreditsError
from fitslot.models.user import UserRole


@pytest.fixture
def template(services):
    """Monday and Wednesday morning sessions"""
    return services.templates.create_template('Standard week', [
        {'day_of_week': 1, 'start_time': '08:00', 'end_time': '09:00'},
        {'day_of_week': 1, 'start_time': '09:00', 'end_time': '10:00'},
        {'day_of_week': 3, 'start_time': '17:00', 'end_time': '18:30', 'duration_minutes': 90}
    ])


class TestSlotLifecycle:
    """Test admin slot state transitions"""

    def test_create_starts_locked(self, services):
        slot = services.slots.create_slot(MONDAY, '09:00', 45, note='Warm-up')
        assert slot['status'] == 'locked'
        assert slot['end_time'] == '09:45'
        assert slot['duration_minutes'] == 45

    def test_create_overlap_rejected(self, services):
        services.slots.create_slot(MONDAY, '09:00', 60)
        with pytest.raises(ValidationError) as exc:
            services.slots.create_slot(MONDAY, '09:30', 60)
        assert exc.value.code == 'SLOT_OVERLAP'
        services.slots.create_slot(MONDAY, '10:00', 60)

    def test_lock_unlock_block(self, services):
        slot_id = services.slots.create_slot(MONDAY, '09:00')['id']
        assert services.slots.unlock_slot(slot_id)['status'] == 'unlocked'
        assert services.slots.lock_slot(slot_id)['status'] == 'locked'
        assert services.slots.block_slot(slot_id)['status'] == 'blocked'
        assert services.slots.unlock_slot(slot_id)['status'] == 'unlocked'

    def test_status_update_cannot_reserve(self, services):
        slot_id = services.slots.create_slot(MONDAY, '09:00')['id']
        with pytest.raises(InvalidStateError):
            services.slots.update_slot(slot_id, {'status': 'reserved'})
        with pytest.raises(ValidationError):
            services.slots.update_slot(slot_id, {'status': 'gone'})
        assert services.slots.update_slot(slot_id, {'note': 'Outdoor'})['note'] == 'Outdoor'

    def test_reserved_slot_is_frozen(self, services, make_user):
        slot_id = services.slots.create_slot(MONDAY, '09:00')['id']
        user_id = make_user(credits=2)
        services.reservations.admin_create_reservation(slot_id, user_id, deduct_credits=True)

        for action in (services.slots.lock_slot, services.slots.unlock_slot,
                       services.slots.block_slot, services.slots.delete_slot):
            with pytest.raises(InvalidStateError):
                action(slot_id)
        with pytest.raises(InvalidStateError):
            services.slots.move_slot(slot_id, MONDAY, '11:00', '12:00')
        with pytest.raises(InvalidStateError):
            services.slots.update_slot(slot_id, {'note': 'changed'})

    def test_move_recomputes_duration(self, services):
        slot_id = services.slots.create_slot(MONDAY, '09:00')['id']
        moved = services.slots.move_slot(slot_id, MONDAY + timedelta(days=1), '10:00', '11:30')
        assert moved['date'] == '2031-03-11'
        assert moved['duration_minutes'] == 90

    def test_move_validation(self, services):
        first = services.slots.create_slot(MONDAY, '09:00')['id']
        services.slots.create_slot(MONDAY, '11:00')

        with pytest.raises(ValidationError):
            services.slots.move_slot(first, MONDAY, '10:00', '10:00')
        with pytest.raises(ValidationError) as exc:
            services.slots.move_slot(first, MONDAY, '10:30', '11:30')
        assert exc.value.code == 'SLOT_OVERLAP'
        # Moving onto its own range is not an overlap
        assert services.slots.move_slot(first, MONDAY, '09:30', '10:30')['start_time'] == '09:30'

    def test_delete(self, services):
        slot_id = services.slots.create_slot(MONDAY, '09:00')['id']
        assert services.slots.delete_slot(slot_id)
        with pytest.raises(NotFoundError):
            services.slots.get_slot(slot_id)


class TestAdminReservations:
    """Test admin bookings on managed slots"""

    def test_admin_create_reserves_slot(self, services, make_user):
        slot_id = services.slots.create_slot(MONDAY, '09:00')['id']
        user_id = make_user(credits=2)

        reservation = services.reservations.admin_create_reservation(
            slot_id, user_id, deduct_credits=True, note='Knee rehab'
        )
        slot = services.slots.get_slot(slot_id)

        assert reservation['slot_id'] == slot_id
        assert slot['status'] == 'reserved'
        assert slot['assigned_user_id'] == user_id
        assert services.credits.get_balance(user_id)['balance'] == 1

    def test_admin_create_without_deduction(self, services, make_user):
        slot_id = services.slots.create_slot(MONDAY, '09:00')['id']
        user_id = make_user()

        reservation = services.reservations.admin_create_reservation(slot_id, user_id, deduct_credits=False)
        assert reservation['credits_used'] == 0
        assert services.credits.get_transactions(user_id) == []

    def test_admin_create_rules(self, services, make_user):
        slot_id = services.slots.create_slot(MONDAY, '09:00')['id']
        broke = make_user()

        with pytest.raises(InsufficientCreditsError):
            services.reservations.admin_create_reservation(slot_id, broke, deduct_credits=True)
        assert services.slots.get_slot(slot_id)['status'] == 'locked'

        services.slots.block_slot(slot_id)
        with pytest.raises(InvalidStateError):
            services.reservations.admin_create_reservation(slot_id, broke, deduct_credits=False)
        with pytest.raises(NotFoundError):
            services.reservations.admin_create_reservation(999, broke, deduct_credits=False)

    def test_admin_horizon(self, services, make_user):
        far = services.slots.create_slot(MONDAY + timedelta(days=400), '09:00')['id']
        with pytest.raises(ValidationError):
            services.reservations.admin_create_reservation(far, make_user(), deduct_credits=False)

    def test_cancel_moves_slot_to_cancelled(self, services, make_user):
        slot_id = services.slots.create_slot(MONDAY, '09:00')['id']
        user_id = make_user(credits=2)
        reservation = services.reservations.admin_create_reservation(slot_id, user_id, deduct_credits=True)

        services.reservations.cancel_reservation(user_id, reservation['id'])
        slot = services.slots.get_slot(slot_id)

        assert slot['status'] == 'cancelled'
        assert slot['cancelled_at'] is not None
        assert services.credits.get_balance(user_id)['balance'] == 2
        # Cancelled slots can be reopened
        assert services.slots.unlock_slot(slot_id)['status'] == 'unlocked'

    def test_admin_listing_carries_reservation(self, services, make_user):
        booked = services.slots.create_slot(MONDAY, '09:00')['id']
        services.slots.create_slot(MONDAY, '10:00')
        open_slot = services.slots.create_slot(MONDAY, '11:00')['id']
        services.slots.unlock_slot(open_slot)
        user_id = make_user(credits=1)
        reservation = services.reservations.admin_create_reservation(booked, user_id, deduct_credits=True)

        listing = {s['id']: s for s in services.slots.get_slots(MONDAY, MONDAY)}
        assert listing[booked]['reservation_id'] == reservation['id']
        assert listing[open_slot]['reservation_id'] is None

        visible = services.slots.get_user_visible_slots(MONDAY, MONDAY)
        assert [s['id'] for s in visible] == [booked, open_slot]
        assert 'assigned_user_id' not in visible[0]


class TestTemplates:
    """Test weekly templates"""

    def test_apply_template(self, services, template):
        # Any day of the week selects that week
        result = services.slots.apply_template(template['id'], MONDAY + timedelta(days=2))

        assert result['created_count'] == 3
        assert [(s['date'], s['start_time']) for s in result['slots']] == [
            ('2031-03-10', '08:00'), ('2031-03-10', '09:00'), ('2031-03-12', '17:00')
        ]
        assert all(s['status'] == 'locked' for s in result['slots'])
        assert result['slots'][2]['template_id'] == template['id']

    def test_apply_template_twice_creates_nothing(self, services, template):
        services.slots.apply_template(template['id'], MONDAY)
        second = services.slots.apply_template(template['id'], MONDAY)

        assert second == {'created_count': 0, 'slots': []}
        assert len(services.slots.get_slots(MONDAY, MONDAY + timedelta(days=6))) == 3

    def test_apply_skips_occupied_ranges(self, services, template):
        services.slots.create_slot(MONDAY, '08:30', 30)
        assert services.slots.apply_template(template['id'], MONDAY)['created_count'] == 2

    def test_apply_inactive_or_missing_template(self, services, template):
        services.templates.update_template(template['id'], is_active=False)
        with pytest.raises(InvalidStateError):
            services.slots.apply_template(template['id'], MONDAY)
        with pytest.raises(NotFoundError):
            services.slots.apply_template(999, MONDAY)

    def test_unlock_week(self, services, template):
        services.slots.apply_template(template['id'], MONDAY)
        services.slots.apply_template(template['id'], MONDAY + timedelta(days=7))

        assert services.slots.unlock_week(MONDAY + timedelta(days=4)) == {'unlocked_count': 3}
        assert services.slots.unlock_week(MONDAY) == {'unlocked_count': 0}
        next_week = services.slots.get_slots(MONDAY + timedelta(days=7), MONDAY + timedelta(days=13))
        assert {s['status'] for s in next_week} == {'locked'}

    def test_unlock_week_leaves_reserved_slots(self, services, make_user):
        slot_ids = [services.slots.create_slot(MONDAY, f'{hour:02d}:00')['id'] for hour in (8, 9, 10)]
        user_ids = [make_user(credits=1) for _ in slot_ids]
        reserve = services.reservations.admin_create_reservation

        outcomes = run_concurrently(
            lambda: services.slots.unlock_week(MONDAY),
            *[lambda s=s, u=u: reserve(s, u) for s, u in zip(slot_ids, user_ids)]
        )

        assert not [o for o in outcomes if isinstance(o, Exception)]
        assert {s['status'] for s in services.slots.get_slots(MONDAY, MONDAY)} == {'reserved'}
        assert services.slots.unlock_week(MONDAY) == {'unlocked_count': 0}
        with pytest.raises(InvalidStateError):
            services.slots.delete_slot(slot_ids[0])

    def test_template_crud(self, services, template):
        assert template['slots'][2]['duration_minutes'] == 90

        updated = services.templates.update_template(template['id'], name='Summer', slots=[
            {'day_of_week': 5, 'start_time': '07:00', 'end_time': '08:00'}
        ])
        assert updated['name'] == 'Summer'
        assert [s['day_of_week'] for s in updated['slots']] == [5]

        assert len(services.templates.list_templates()) == 1
        services.templates.delete_template(template['id'])
        with pytest.raises(NotFoundError):
            services.templates.get_template(template['id'])

    @pytest.mark.parametrize('definition', [
        {'day_of_week': 8, 'start_time': '08:00', 'end_time': '09:00'},
        {'day_of_week': 1, 'start_time': '09:00', 'end_time': '08:00'},
        {'day_of_week': 1, 'start_time': '08:00', 'end_time': '09:00', 'duration_minutes': 0},
        {'day_of_week': 1, 'start_time': 'noon', 'end_time': '13:00'},
        {'day_of_week': 1, 'start_time': '09:00', 'end_time': '10:00', 'duration_minutes': 30}
    ])
    def test_template_slot_validation(self, services, definition):
        with pytest.raises(ValidationError):
            services.templates.create_template('Broken', [definition])


class TestUsers:
    """Test user management"""

    def test_create_and_list_clients(self, services):
        client = services.users.create_user('Anna@Example.com', 'Anna', 'Novak')
        services.users.create_user('coach@example.com', role=UserRole.ADMIN)

        assert client['email'] == 'anna@example.com'
        assert client['credits'] == 0
        assert [c['id'] for c in services.users.list_clients()] == [client['id']]

    def test_create_user_validation(self, services):
        services.users.create_user('dup@example.com')
        with pytest.raises(ValidationError):
            services.users.create_user('dup@example.com')
        with pytest.raises(ValidationError):
            services.users.create_user('not-an-email')
        with pytest.raises(ValidationError):
            services.users.create_user('x@example.com', role='owner')
