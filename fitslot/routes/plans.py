from flask import Blueprint, jsonify
from fitslot.extensions import get_services
from fitslot.middleware.auth import require_auth

bp = Blueprint('plans', __name__)


@bp.route('', methods=['GET'])
@require_auth
def list_plans(current_user):
    return jsonify({'plans': get_services().plans.list_plans()}), 200


@bp.route('/mine', methods=['GET'])
@require_auth
def my_plans(current_user):
    return jsonify({'purchases': get_services().plans.get_user_plans(current_user['user_id'])}), 200


@bp.route('/<int:plan_id>/purchase', methods=['POST'])
@require_auth
def purchase_plan(current_user, plan_id):
    """Pay for a training plan with credits"""
    purchase = get_services().plans.purchase_plan(current_user['user_id'], plan_id)
    return jsonify(purchase), 201
