from flask import Blueprint, jsonify
from fitslot.extensions import get_services, date_arg
from fitslot.middleware.auth import require_auth

bp = Blueprint('availability', __name__)


@bp.route('', methods=['GET'])
@require_auth
def get_availability(current_user):
    """Bookable slots for one date"""
    day = date_arg('date')
    slots = get_services().availability.compute_availability(day)
    return jsonify({'date': day.isoformat(), 'slots': slots}), 200


@bp.route('/range', methods=['GET'])
@require_auth
def get_availability_range(current_user):
    start_date = date_arg('start_date')
    end_date = date_arg('end_date')
    slots = get_services().availability.get_available_slots_range(start_date, end_date)
    return jsonify({'slots': slots}), 200


@bp.route('/slots', methods=['GET'])
@require_auth
def get_visible_slots(current_user):
    """Admin-published slots a client can see"""
    slots = get_services().slots.get_user_visible_slots(date_arg('start_date'), date_arg('end_date'))
    return jsonify({'slots': slots}), 200
