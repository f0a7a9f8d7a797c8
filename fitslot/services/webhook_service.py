from typing import Dict
from fitslot.errors import ValidationError
from fitslot.services.credit_service import CreditService
from fitslot.utils.logger import get_logger

logger = get_logger(__name__)


class WebhookService:
    """Service for handling payment provider events"""

    def __init__(self, credit_service: CreditService):
        self.credit_service = credit_service

    def process_stripe_event(self, event: dict) -> Dict:
        """Credit the purchased package on a completed checkout"""
        event_type = event.get('type')
        data = event.get('data', {}).get('object', {})

        logger.info(f"Processing Stripe event: {event_type}")

        if event_type != 'checkout.session.completed':
            return {'status': 'ignored', 'type': event_type}

        metadata = data.get('metadata') or {}
        try:
            user_id = int(metadata['user_id'])
            package_id = int(metadata['package_id'])
        except (KeyError, TypeError, ValueError):
            raise ValidationError('Checkout session is missing user or package metadata')

        external_payment_id = data.get('payment_intent') or data.get('id')
        balance = self.credit_service.add_credits_from_payment(user_id, package_id, external_payment_id)

        logger.info(f"Checkout {data.get('id')} credited user {user_id}, balance {balance}")
        return {'status': 'credited', 'user_id': user_id, 'balance': balance}
