from flask import Blueprint, jsonify
from fitslot.errors import ValidationError
from fitslot.extensions import get_services, json_body, int_field
from fitslot.middleware.auth import require_auth

bp = Blueprint('reservations', __name__)


@bp.route('', methods=['POST'])
@require_auth
def create_reservation(current_user):
    """Book a computed slot"""
    data = json_body()

    required = ['date', 'start_time', 'end_time']
    missing = [field for field in required if data.get(field) in (None, '')]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    reservation = get_services().reservations.create_reservation(
        user_id=current_user['user_id'],
        block_id=int_field(data, 'block_id'),
        date=data['date'],
        start_time=data['start_time'],
        end_time=data['end_time'],
        pricing_item_id=int_field(data, 'pricing_item_id', required=False)
    )
    return jsonify(reservation), 201


@bp.route('', methods=['GET'])
@require_auth
def list_reservations(current_user):
    reservations = get_services().reservations.get_user_reservations(current_user['user_id'])
    return jsonify({'reservations': reservations}), 200


@bp.route('/upcoming', methods=['GET'])
@require_auth
def upcoming_reservations(current_user):
    reservations = get_services().reservations.get_upcoming_reservations(current_user['user_id'])
    return jsonify({'reservations': reservations}), 200


@bp.route('/<int:reservation_id>/cancel', methods=['POST'])
@require_auth
def cancel_reservation(current_user, reservation_id):
    reservation = get_services().reservations.cancel_reservation(current_user['user_id'], reservation_id)
    return jsonify(reservation), 200
