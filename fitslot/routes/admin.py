from flask import Blueprint, request, jsonify
from fitslot.errors import ValidationError
from fitslot.extensions import get_services, date_arg, json_body, int_field
from fitslot.middleware.auth import require_auth, require_admin
from fitslot.utils.timeutils import parse_date
from fitslot.utils.logger import get_logger

bp = Blueprint('admin', __name__)
logger = get_logger(__name__)


# Calendar

@bp.route('/calendar', methods=['GET'])
@require_auth
@require_admin
def get_calendar(current_user):
    """Block-generated slots with their reservation state"""
    slots = get_services().availability.get_admin_calendar(date_arg('start_date'), date_arg('end_date'))
    return jsonify({'slots': slots}), 200


# Slots

@bp.route('/slots', methods=['GET'])
@require_auth
@require_admin
def list_slots(current_user):
    slots = get_services().slots.get_slots(date_arg('start_date'), date_arg('end_date'))
    return jsonify({'slots': slots}), 200


@bp.route('/slots', methods=['POST'])
@require_auth
@require_admin
def create_slot(current_user):
    data = json_body()
    slot = get_services().slots.create_slot(
        date=data.get('date'),
        start_time=data.get('start_time'),
        duration_minutes=data.get('duration_minutes'),
        admin_id=current_user['user_id'],
        note=data.get('note')
    )
    return jsonify(slot), 201


@bp.route('/slots/<int:slot_id>', methods=['GET'])
@require_auth
@require_admin
def get_slot(current_user, slot_id):
    return jsonify(get_services().slots.get_slot(slot_id)), 200


@bp.route('/slots/<int:slot_id>', methods=['PUT'])
@require_auth
@require_admin
def update_slot(current_user, slot_id):
    return jsonify(get_services().slots.update_slot(slot_id, json_body())), 200


@bp.route('/slots/<int:slot_id>', methods=['DELETE'])
@require_auth
@require_admin
def delete_slot(current_user, slot_id):
    get_services().slots.delete_slot(slot_id)
    return jsonify({'deleted': True}), 200


@bp.route('/slots/<int:slot_id>/lock', methods=['POST'])
@require_auth
@require_admin
def lock_slot(current_user, slot_id):
    return jsonify(get_services().slots.lock_slot(slot_id)), 200


@bp.route('/slots/<int:slot_id>/unlock', methods=['POST'])
@require_auth
@require_admin
def unlock_slot(current_user, slot_id):
    return jsonify(get_services().slots.unlock_slot(slot_id)), 200


@bp.route('/slots/<int:slot_id>/block', methods=['POST'])
@require_auth
@require_admin
def block_slot(current_user, slot_id):
    return jsonify(get_services().slots.block_slot(slot_id)), 200


@bp.route('/slots/<int:slot_id>/move', methods=['POST'])
@require_auth
@require_admin
def move_slot(current_user, slot_id):
    data = json_body()
    slot = get_services().slots.move_slot(
        slot_id, data.get('date'), data.get('start_time'), data.get('end_time')
    )
    return jsonify(slot), 200


@bp.route('/week/unlock', methods=['POST'])
@require_auth
@require_admin
def unlock_week(current_user):
    return jsonify(get_services().slots.unlock_week(json_body().get('week_start'))), 200


# Templates

@bp.route('/templates', methods=['GET'])
@require_auth
@require_admin
def list_templates(current_user):
    active_only = request.args.get('active_only', 'false').lower() == 'true'
    return jsonify({'templates': get_services().templates.list_templates(active_only)}), 200


@bp.route('/templates', methods=['POST'])
@require_auth
@require_admin
def create_template(current_user):
    data = json_body()
    template = get_services().templates.create_template(
        data.get('name'), data.get('slots', []), admin_id=current_user['user_id']
    )
    return jsonify(template), 201


@bp.route('/templates/<int:template_id>', methods=['GET'])
@require_auth
@require_admin
def get_template(current_user, template_id):
    return jsonify(get_services().templates.get_template(template_id)), 200


@bp.route('/templates/<int:template_id>', methods=['PUT'])
@require_auth
@require_admin
def update_template(current_user, template_id):
    data = json_body()
    template = get_services().templates.update_template(
        template_id,
        name=data.get('name'),
        is_active=data.get('is_active'),
        slots=data.get('slots')
    )
    return jsonify(template), 200


@bp.route('/templates/<int:template_id>', methods=['DELETE'])
@require_auth
@require_admin
def delete_template(current_user, template_id):
    get_services().templates.delete_template(template_id)
    return jsonify({'deleted': True}), 200


@bp.route('/templates/<int:template_id>/apply', methods=['POST'])
@require_auth
@require_admin
def apply_template(current_user, template_id):
    result = get_services().slots.apply_template(template_id, json_body().get('week_start'))
    return jsonify(result), 201


# Availability blocks

@bp.route('/blocks', methods=['GET'])
@require_auth
@require_admin
def list_blocks(current_user):
    active_only = request.args.get('active_only', 'false').lower() == 'true'
    return jsonify({'blocks': get_services().blocks.list_blocks(active_only)}), 200


@bp.route('/blocks', methods=['POST'])
@require_auth
@require_admin
def create_block(current_user):
    block = get_services().blocks.create_block(json_body(), admin_id=current_user['user_id'])
    return jsonify(block), 201


@bp.route('/blocks/<int:block_id>', methods=['GET'])
@require_auth
@require_admin
def get_block(current_user, block_id):
    return jsonify(get_services().blocks.get_block(block_id)), 200


@bp.route('/blocks/<int:block_id>', methods=['PUT'])
@require_auth
@require_admin
def update_block(current_user, block_id):
    return jsonify(get_services().blocks.update_block(block_id, json_body())), 200


@bp.route('/blocks/<int:block_id>', methods=['DELETE'])
@require_auth
@require_admin
def delete_block(current_user, block_id):
    get_services().blocks.delete_block(block_id)
    return jsonify({'deleted': True}), 200


@bp.route('/blocked-time', methods=['POST'])
@require_auth
@require_admin
def block_time(current_user):
    data = json_body()
    day = _body_date(data, 'date')
    block = get_services().blocks.block_time(
        day, data.get('start_time'), data.get('end_time'), name=data.get('name')
    )
    return jsonify(block), 201


@bp.route('/blocked-time', methods=['DELETE'])
@require_auth
@require_admin
def unblock_time(current_user):
    start_time = request.args.get('start_time')
    if not start_time:
        raise ValidationError('Query parameter start_time is required')
    get_services().blocks.unblock_time(date_arg('date'), start_time)
    return jsonify({'deleted': True}), 200


# Reservations

@bp.route('/reservations', methods=['GET'])
@require_auth
@require_admin
def list_reservations(current_user):
    reservations = get_services().reservations.get_reservations_by_date_range(
        date_arg('start_date'), date_arg('end_date')
    )
    return jsonify({'reservations': reservations}), 200


@bp.route('/reservations', methods=['POST'])
@require_auth
@require_admin
def create_reservation(current_user):
    """Book a slot on behalf of a client"""
    data = json_body()
    slot_id, user_id = int_field(data, 'slot_id'), int_field(data, 'user_id')

    reservation = get_services().reservations.admin_create_reservation(
        slot_id=slot_id,
        user_id=user_id,
        deduct_credits=bool(data.get('deduct_credits', True)),
        note=data.get('note')
    )
    logger.info(f"Admin {current_user['user_id']} booked slot {slot_id} for user {user_id}")
    return jsonify(reservation), 201


@bp.route('/reservations/<int:reservation_id>/cancel', methods=['POST'])
@require_auth
@require_admin
def cancel_reservation(current_user, reservation_id):
    data = request.get_json(silent=True) or {}
    reservation = get_services().reservations.admin_cancel_reservation(
        reservation_id, refund_credits=bool(data.get('refund_credits', True))
    )
    logger.info(f"Admin {current_user['user_id']} cancelled reservation {reservation_id}")
    return jsonify(reservation), 200


@bp.route('/reservations/<int:reservation_id>/note', methods=['PATCH'])
@require_auth
@require_admin
def update_reservation_note(current_user, reservation_id):
    reservation = get_services().reservations.update_reservation_note(
        reservation_id, json_body().get('note')
    )
    return jsonify(reservation), 200


# Clients and credits

@bp.route('/clients', methods=['GET'])
@require_auth
@require_admin
def list_clients(current_user):
    return jsonify({'clients': get_services().users.list_clients()}), 200


@bp.route('/users', methods=['POST'])
@require_auth
@require_admin
def create_user(current_user):
    data = json_body()
    user = get_services().users.create_user(
        email=data.get('email'),
        first_name=data.get('first_name'),
        last_name=data.get('last_name'),
        phone=data.get('phone'),
        role=data.get('role', 'client')
    )
    return jsonify(user), 201


@bp.route('/users/<int:user_id>/credits', methods=['POST'])
@require_auth
@require_admin
def adjust_credits(current_user, user_id):
    data = json_body()
    balance = get_services().credits.adjust_credits(user_id, data.get('amount'), data.get('note'))
    logger.info(f"Admin {current_user['user_id']} adjusted credits of user {user_id} by {data.get('amount')}")
    return jsonify({'user_id': user_id, 'balance': balance}), 200


@bp.route('/users/<int:user_id>/transactions', methods=['GET'])
@require_auth
@require_admin
def user_transactions(current_user, user_id):
    limit = request.args.get('limit', 50, type=int)
    return jsonify({'transactions': get_services().credits.get_transactions(user_id, limit)}), 200


@bp.route('/transactions', methods=['GET'])
@require_auth
@require_admin
def all_transactions(current_user):
    limit = request.args.get('limit', 100, type=int)
    return jsonify({'transactions': get_services().credits.get_all_transactions(limit)}), 200


# Packages and pricing

@bp.route('/packages', methods=['GET'])
@require_auth
@require_admin
def list_packages(current_user):
    return jsonify({'packages': get_services().credits.get_packages(active_only=False)}), 200


@bp.route('/packages', methods=['POST'])
@require_auth
@require_admin
def create_package(current_user):
    return jsonify(get_services().credits.create_package(json_body())), 201


@bp.route('/packages/<int:package_id>', methods=['PUT'])
@require_auth
@require_admin
def update_package(current_user, package_id):
    return jsonify(get_services().credits.update_package(package_id, json_body())), 200


@bp.route('/packages/<int:package_id>', methods=['DELETE'])
@require_auth
@require_admin
def delete_package(current_user, package_id):
    get_services().credits.delete_package(package_id)
    return jsonify({'deleted': True}), 200


@bp.route('/pricing', methods=['GET'])
@require_auth
@require_admin
def list_pricing_items(current_user):
    return jsonify({'pricing_items': get_services().credits.get_pricing_items(active_only=False)}), 200


@bp.route('/pricing', methods=['POST'])
@require_auth
@require_admin
def create_pricing_item(current_user):
    return jsonify(get_services().credits.create_pricing_item(json_body())), 201


@bp.route('/pricing/<int:item_id>', methods=['PUT'])
@require_auth
@require_admin
def update_pricing_item(current_user, item_id):
    return jsonify(get_services().credits.update_pricing_item(item_id, json_body())), 200


@bp.route('/pricing/<int:item_id>', methods=['DELETE'])
@require_auth
@require_admin
def delete_pricing_item(current_user, item_id):
    get_services().credits.delete_pricing_item(item_id)
    return jsonify({'deleted': True}), 200


# Training plans

@bp.route('/plans', methods=['GET'])
@require_auth
@require_admin
def list_plans(current_user):
    return jsonify({'plans': get_services().plans.list_plans(active_only=False)}), 200


@bp.route('/plans', methods=['POST'])
@require_auth
@require_admin
def create_plan(current_user):
    return jsonify(get_services().plans.create_plan(json_body())), 201


@bp.route('/plans/<int:plan_id>', methods=['PUT'])
@require_auth
@require_admin
def update_plan(current_user, plan_id):
    return jsonify(get_services().plans.update_plan(plan_id, json_body())), 200


@bp.route('/plans/<int:plan_id>', methods=['DELETE'])
@require_auth
@require_admin
def delete_plan(current_user, plan_id):
    get_services().plans.delete_plan(plan_id)
    return jsonify({'deleted': True}), 200


def _body_date(data: dict, field: str):
    try:
        return parse_date(data.get(field))
    except ValueError as e:
        raise ValidationError(str(e))
