import stripe
from typing import Dict, Optional
from config.config import Config
from fitslot.utils.logger import get_logger

logger = get_logger(__name__)


class StripeClient:
    """Wrapper for Stripe API operations"""

    def __init__(self, api_key: str = None, webhook_secret: str = None):
        self.api_key = api_key or Config.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret or Config.STRIPE_WEBHOOK_SECRET
        if not self.api_key:
            logger.warning("Stripe API key not configured")
        stripe.api_key = self.api_key

    def create_checkout_session(self, package: Dict, user_id: int,
                                success_url: str, cancel_url: str) -> Optional[Dict]:
        """Start a hosted checkout for a credit package"""
        try:
            session = stripe.checkout.Session.create(
                mode='payment',
                line_items=[{
                    'quantity': 1,
                    'price_data': {
                        'currency': package['currency'].lower(),
                        'unit_amount': int(round(package['price'] * 100)),
                        'product_data': {'name': package['name']}
                    }
                }],
                metadata={'user_id': str(user_id), 'package_id': str(package['id'])},
                success_url=success_url,
                cancel_url=cancel_url
            )
            return session
        except stripe.StripeError as e:
            logger.error(f"Error creating checkout session: {str(e)}")
            return None

    def verify_webhook_signature(self, payload: bytes, signature: str) -> Optional[Dict]:
        """Verify webhook signature and return event"""
        try:
            event = stripe.Webhook.construct_event(
                payload, signature, self.webhook_secret
            )
            return event
        except ValueError as e:
            logger.error(f"Invalid webhook payload: {str(e)}")
            return None
        except stripe.SignatureVerificationError as e:
            logger.error(f"Invalid webhook signature: {str(e)}")
            return None
