from datetime import date
from flask import current_app, request
from fitslot.errors import ValidationError
from fitslot.utils.timeutils import parse_date


def get_services():
    """Service container of the running app"""
    return current_app.extensions['fitslot']


def date_arg(name: str, required: bool = True) -> date:
    """Date from the query string; malformed or missing values are a ValidationError"""
    value = request.args.get(name)
    if not value:
        if required:
            raise ValidationError(f'Query parameter {name} is required')
        return None
    try:
        return parse_date(value)
    except ValueError as e:
        raise ValidationError(str(e))


def json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def int_field(data: dict, name: str, required: bool = True) -> int:
    """Integer id or count from a JSON body; numeric strings are accepted"""
    value = data.get(name)
    if value is None or value == '':
        if required:
            raise ValidationError(f'{name} is required')
        return None
    if isinstance(value, bool):
        raise ValidationError(f'{name} must be an integer')
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{name} must be an integer')
