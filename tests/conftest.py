import itertools
import threading
import pytest
from datetime import date, datetime
from unittest.mock import Mock
from fitslot.database import Database
from fitslot.integrations import StripeClient
from fitslot.main import ServiceContainer, create_app
from fitslot.models.user import UserRole
from fitslot.utils.security import generate_token

# Monday morning; bookings in tests target the following Monday
NOW = datetime(2031, 3, 3, 8, 0)
TODAY = NOW.date()
MONDAY = date(2031, 3, 10)


class FixedClock:
    """Clock whose time only moves when a test moves it"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def database(tmp_path):
    """Fresh SQLite database per test"""
    db = Database(f"sqlite:///{tmp_path / 'fitslot_test.db'}")
    db.init_db()
    yield db
    db.drop_db()
    db.dispose()


@pytest.fixture
def services(database, clock):
    return ServiceContainer(database, clock, stripe_client=Mock(spec=StripeClient))


@pytest.fixture
def make_user(services):
    """Create a user, optionally with a starting balance"""
    counter = itertools.count(1)

    def _make(credits: int = 0, role: UserRole = UserRole.CLIENT) -> int:
        n = next(counter)
        user = services.users.create_user(
            email=f'user{n}@example.com',
            first_name='Test',
            last_name=f'User{n}',
            role=role
        )
        if credits:
            services.credits.adjust_credits(user['id'], credits, 'Starting balance')
        return user['id']

    return _make


@pytest.fixture
def make_block(services):
    """Create an availability block; Mondays 08:00-12:00 in 60 minute slots by default"""
    def _make(start: str = '08:00', end: str = '12:00', duration: int = 60,
              days=(1,), **extra) -> int:
        data = {
            'name': f'Block {start}',
            'start_time': start,
            'end_time': end,
            'slot_duration_minutes': duration,
            'days_of_week': list(days)
        }
        data.update(extra)
        return services.blocks.create_block(data)['id']

    return _make


@pytest.fixture
def app(database, clock):
    app = create_app('testing', database=database, clock=clock)
    yield app


@pytest.fixture
def http(app):
    return app.test_client()


def auth_header(user_id: int, role: str = 'client') -> dict:
    token = generate_token({'user_id': user_id, 'role': role})
    return {'Authorization': f'Bearer {token}'}


def run_concurrently(*calls):
    """Start every call at the same moment; collect results and raised errors"""
    barrier = threading.Barrier(len(calls))
    outcomes = [None] * len(calls)

    def runner(index, call):
        barrier.wait()
        try:
            outcomes[index] = call()
        except Exception as e:  # collected for the assertions
            outcomes[index] = e

    threads = [threading.Thread(target=runner, args=(i, c)) for i, c in enumerate(calls)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return outcomes
