from flask import Blueprint, jsonify, request
from fitslot.errors import ValidationError
from fitslot.extensions import get_services, json_body, int_field
from fitslot.middleware.auth import require_auth
from fitslot.utils.logger import get_logger

bp = Blueprint('credits', __name__)
logger = get_logger(__name__)


@bp.route('/balance', methods=['GET'])
@require_auth
def get_balance(current_user):
    return jsonify(get_services().credits.get_balance(current_user['user_id'])), 200


@bp.route('/transactions', methods=['GET'])
@require_auth
def get_transactions(current_user):
    limit = request.args.get('limit', 50, type=int)
    transactions = get_services().credits.get_transactions(current_user['user_id'], limit=limit)
    return jsonify({'transactions': transactions}), 200


@bp.route('/packages', methods=['GET'])
@require_auth
def get_packages(current_user):
    return jsonify({'packages': get_services().credits.get_packages()}), 200


@bp.route('/pricing', methods=['GET'])
@require_auth
def get_pricing(current_user):
    return jsonify({'pricing_items': get_services().credits.get_pricing_items()}), 200


@bp.route('/checkout', methods=['POST'])
@require_auth
def create_checkout(current_user):
    """Start a card payment for a credit package"""
    data = json_body()
    services = get_services()

    package = services.credits.get_package(int_field(data, 'package_id'))
    if not data.get('success_url') or not data.get('cancel_url'):
        raise ValidationError('success_url and cancel_url are required')

    session = services.stripe.create_checkout_session(
        package, current_user['user_id'], data['success_url'], data['cancel_url']
    )
    if not session:
        return jsonify({'error': 'Payment provider unavailable'}), 502

    logger.info(f"Checkout started for user {current_user['user_id']}, package {package['id']}")
    return jsonify({'checkout_url': session['url'], 'session_id': session['id']}), 201

