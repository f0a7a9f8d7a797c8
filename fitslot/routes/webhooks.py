from flask import Blueprint, request, jsonify
from fitslot.extensions import get_services
from fitslot.utils.logger import get_logger

bp = Blueprint('webhooks', __name__)
logger = get_logger(__name__)


@bp.route('/stripe', methods=['POST'])
def stripe_webhook():
    """Handle Stripe webhook events"""
    payload = request.get_data()
    sig_header = request.headers.get('Stripe-Signature')

    if not sig_header:
        return jsonify({'error': 'No signature header'}), 400

    services = get_services()
    event = services.stripe.verify_webhook_signature(payload, sig_header)
    if not event:
        return jsonify({'error': 'Invalid signature'}), 400

    result = services.webhooks.process_stripe_event(event)
    return jsonify({'received': True, 'result': result}), 200
