#!/usr/bin/env python3
"""
Script to seed the database with sample data for testing
"""

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from datetime import date
from fitslot.database import Database
from fitslot.main import ServiceContainer
from fitslot.models.user import UserRole
from fitslot.utils.security import generate_token
from fitslot.utils.timeutils import week_start


def create_users(services):
    """Create one trainer and a few clients with starting credits"""
    admin = services.users.create_user('trainer@fitslot.local', 'Petra', 'Trainer', role=UserRole.ADMIN)

    clients = []
    for first, last, credits in [('Jan', 'Novak', 10), ('Eva', 'Svobodova', 5), ('Tomas', 'Dvorak', 0)]:
        client = services.users.create_user(f'{first.lower()}@fitslot.local', first, last)
        if credits:
            services.credits.adjust_credits(client['id'], credits, 'Seed balance')
        clients.append(client)

    return admin, clients


def create_blocks(services, admin_id):
    """Weekday mornings and two evenings"""
    services.blocks.create_block({
        'name': 'Mornings',
        'days_of_week': [1, 2, 3, 4, 5],
        'start_time': '07:00',
        'end_time': '11:00',
        'slot_duration_minutes': 60
    }, admin_id=admin_id)
    services.blocks.create_block({
        'name': 'Evenings',
        'days_of_week': [2, 4],
        'start_time': '16:00',
        'end_time': '20:30',
        'slot_duration_minutes': 60,
        'break_after_slots': 2,
        'break_duration_minutes': 30
    }, admin_id=admin_id)


def create_catalogue(services):
    services.credits.create_pricing_item({'name': 'Personal training', 'credits': 1, 'duration_minutes': 60})
    services.credits.create_pricing_item({'name': 'Double session', 'credits': 2, 'duration_minutes': 60})
    services.credits.create_package({'name': '5 sessions', 'credits': 5, 'price': 2500, 'sort_order': 1})
    services.credits.create_package({'name': '10 sessions', 'credits': 10, 'bonus_credits': 1,
                                     'price': 4500, 'sort_order': 2})
    services.plans.create_plan({'name': 'Strength 8 weeks', 'credits': 4, 'price': 1900,
                                'validity_days': 56, 'sessions_count': 16})


def create_template(services, admin_id):
    template = services.templates.create_template('Saturday group', [
        {'day_of_week': 6, 'start_time': '09:00', 'end_time': '10:00'},
        {'day_of_week': 6, 'start_time': '10:00', 'end_time': '11:00'}
    ], admin_id=admin_id)
    return services.slots.apply_template(template['id'], week_start(date.today()))


def main():
    """Main seeding function"""
    database = Database()

    print("Dropping existing database...")
    database.drop_db()

    print("Initializing new database...")
    database.init_db()

    services = ServiceContainer(database)

    print("Creating users...")
    admin, clients = create_users(services)

    print("Creating availability, pricing and templates...")
    create_blocks(services, admin['id'])
    create_catalogue(services)
    applied = create_template(services, admin['id'])

    print("\nDatabase seeded successfully!")
    print("Created:")
    print(f"- 1 Trainer ({admin['email']})")
    print(f"- {len(clients)} Clients")
    print(f"- {applied['created_count']} template slots this week")

    print("\nAdmin token:")
    print(generate_token({'user_id': admin['id'], 'role': 'admin'}))


if __name__ == "__main__":
    main()
