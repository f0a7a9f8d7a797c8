from datetime import datetime
from typing import Callable
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from config.config import config
from fitslot.database import Database
from fitslot.errors import BookingError
from fitslot.integrations import StripeClient
from fitslot.services.availability_service import AvailabilityService
from fitslot.services.block_service import AvailabilityBlockService
from fitslot.services.credit_service import CreditService
from fitslot.services.plan_service import PlanService
from fitslot.services.reservation_service import ReservationService
from fitslot.services.slot_service import SlotService
from fitslot.services.template_service import TemplateService
from fitslot.services.user_service import UserService
from fitslot.services.webhook_service import WebhookService
from fitslot.utils.locks import KeyedLock
from fitslot.utils.logger import get_logger

logger = get_logger(__name__)


class ServiceContainer:
    """Wires every service to one database, lock registry and clock"""

    def __init__(self, database: Database, clock: Callable[[], datetime] = None,
                 stripe_client: StripeClient = None):
        self.database = database
        self.locks = KeyedLock()
        self.clock = clock or datetime.now

        self.users = UserService(database)
        self.credits = CreditService(database, self.locks)
        self.plans = PlanService(database, self.credits, self.locks, self.clock)
        self.availability = AvailabilityService(database, self.clock)
        self.blocks = AvailabilityBlockService(database)
        self.templates = TemplateService(database)
        self.slots = SlotService(database, self.locks, self.clock)
        self.reservations = ReservationService(
            database, self.availability, self.credits, self.locks, self.clock
        )
        self.webhooks = WebhookService(self.credits)
        self.stripe = stripe_client or StripeClient()


def create_app(config_name: str = 'default', database: Database = None,
               clock: Callable[[], datetime] = None, stripe_client: StripeClient = None) -> Flask:
    """Create and configure the Flask application"""
    app = Flask(__name__)
    app.config.from_object(config[config_name])

    if database is None:
        database = Database(app.config['DATABASE_URL'])
        database.init_db()

    app.extensions['fitslot'] = ServiceContainer(database, clock, stripe_client)

    from fitslot.routes import admin, availability, credits, plans, reservations, webhooks
    app.register_blueprint(availability.bp, url_prefix='/api/availability')
    app.register_blueprint(reservations.bp, url_prefix='/api/reservations')
    app.register_blueprint(credits.bp, url_prefix='/api/credits')
    app.register_blueprint(plans.bp, url_prefix='/api/plans')
    app.register_blueprint(admin.bp, url_prefix='/api/admin')
    app.register_blueprint(webhooks.bp, url_prefix='/api/webhooks')

    register_error_handlers(app)

    @app.route('/api/health')
    def health():
        return jsonify({'status': 'healthy', 'service': 'fitslot'})

    logger.info(f"Application created with '{config_name}' config")
    return app


def register_error_handlers(app: Flask):
    @app.errorhandler(BookingError)
    def handle_booking_error(error: BookingError):
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        return jsonify({'error': error.description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        logger.exception(f"Unhandled error: {error}")
        return jsonify({'error': 'Internal server error'}), 500
